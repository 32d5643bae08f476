"""Identity broker: host token exchange, then silent, popup and redirect acquisition."""

import logging

from coach.session.errors import AuthError, HostUnavailable, InteractionRequired, RedirectRequired
from coach.session.host import HostContext, HostPlatform
from coach.session.providers import IdentityProvider, IdentityToken, PopupLauncher

logger = logging.getLogger(__name__)


class IdentityBroker:
    """Obtains an identity token from ``provider``.

    Each fallback is a single attempt, triggered only by the failure of the
    step before it:

    1. embedded hosts: exchange the host SSO token for a provider token;
    2. silent acquisition from the provider's cache or session;
    3. popup (the host's auth popup when embedded, else ``popup``);
    4. full-page redirect, signalled by raising RedirectRequired.

    With ``require_id_token`` a token that carries no OIDC ID token counts as
    an interaction-required failure of the step that produced it.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        scopes: list[str],
        popup: PopupLauncher | None = None,
        require_id_token: bool = False,
    ):
        self.provider = provider
        self.scopes = scopes
        self._popup = popup
        self.require_id_token = require_id_token

    def _usable(self, token: IdentityToken) -> IdentityToken:
        if self.require_id_token and not token.id_token:
            raise InteractionRequired(f"{self.provider.name} returned no ID token")
        return token

    async def acquire(self, host: HostContext, platform: HostPlatform | None = None) -> IdentityToken:
        host_attempted = False
        if host.embedded and platform is not None:
            try:
                host_token = await platform.get_auth_token()
                host_attempted = True
                return self._usable(await self.provider.exchange_host_token(host_token, self.scopes))
            except (HostUnavailable, InteractionRequired) as e:
                logger.info("Host token exchange unavailable: %s", e)

        try:
            # After a host exchange the provider's cached token may be the
            # on-behalf-of one, so go to the token endpoint instead.
            token = await self.provider.acquire_silent(self.scopes, force_refresh=host_attempted)
            return self._usable(token)
        except InteractionRequired as e:
            logger.info("Silent token acquisition failed, falling back to popup: %s", e)

        launcher = platform.authenticate if host.embedded and platform is not None else self._popup
        try:
            return self._usable(await self.provider.acquire_popup(self.scopes, launcher))
        except AuthError as e:
            logger.info("Popup sign-in failed, falling back to redirect: %s", e)

        raise RedirectRequired(self.provider.redirect_url(self.scopes))

    async def acquire_silent(self) -> IdentityToken:
        """Re-acquire without any interaction; raises InteractionRequired on failure."""
        return self._usable(await self.provider.acquire_silent(self.scopes, force_refresh=True))

    async def complete_redirect(self, callback: str) -> IdentityToken:
        return self._usable(await self.provider.complete_redirect(callback))

    async def sign_out(self) -> None:
        await self.provider.sign_out()

    async def aclose(self) -> None:
        await self.provider.aclose()
