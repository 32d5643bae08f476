"""Session bridge: host detection, identity acquisition and backend session exchange."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from coach.session.broker import IdentityBroker
from coach.session.errors import AuthError, RedirectRequired, SessionExchangeError
from coach.session.exchanger import BackendSession, SessionExchanger
from coach.session.host import STANDALONE, HostContext, HostPlatform, detect_host_context
from coach.session.providers import IdentityToken

logger = logging.getLogger(__name__)


class BridgeState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    ACQUIRING = "acquiring"
    EXCHANGING = "exchanging"
    READY = "ready"
    REDIRECTING = "redirecting"
    SIGN_IN_REQUIRED = "sign_in_required"
    FAILED = "failed"
    SIGNED_OUT = "signed_out"


@dataclass
class Session:
    identity: IdentityToken
    backend: BackendSession
    host: HostContext

    @property
    def user_id(self) -> str:
        return self.backend.user_id

    @property
    def display_name(self) -> str:
        return self.identity.display_name or "User"


class SessionBridge:
    """Turns a host or browser identity into an authenticated backend session.

    Every public coroutine records the resulting state before returning or
    re-raising, so callers can render ``state`` and ``error`` directly.
    """

    def __init__(
        self,
        broker: IdentityBroker,
        exchanger: SessionExchanger,
        platform: HostPlatform | None = None,
        detect_timeout: float = 2.0,
        refresh_skew: float = 300,
        on_change: Callable[[BridgeState], None] | None = None,
    ):
        self.broker = broker
        self.exchanger = exchanger
        self.platform = platform
        self.detect_timeout = detect_timeout
        self.refresh_skew = refresh_skew
        self._on_change = on_change
        self.state = BridgeState.IDLE
        self.host: HostContext = STANDALONE
        self.session: Session | None = None
        self.error: str | None = None
        self.redirect_url: str | None = None

    def _set(self, state: BridgeState, error: str | None = None) -> None:
        self.state = state
        self.error = error
        logger.debug("Session bridge state: %s", state.value)
        if self._on_change:
            self._on_change(state)

    async def start(self) -> Session:
        self.session = None
        self.redirect_url = None
        self._set(BridgeState.DETECTING)
        self.host = await detect_host_context(self.platform, self.detect_timeout)

        self._set(BridgeState.ACQUIRING)
        try:
            identity = await self.broker.acquire(self.host, self.platform)
        except RedirectRequired as e:
            self.redirect_url = e.url
            self._set(BridgeState.REDIRECTING)
            raise
        except AuthError as e:
            self._set(BridgeState.SIGN_IN_REQUIRED, str(e))
            raise
        return await self._exchange(identity)

    async def complete_redirect(self, callback: str) -> Session:
        self.redirect_url = None
        self._set(BridgeState.ACQUIRING)
        try:
            identity = await self.broker.complete_redirect(callback)
        except AuthError as e:
            self._set(BridgeState.SIGN_IN_REQUIRED, str(e))
            raise
        return await self._exchange(identity)

    async def _exchange(self, identity: IdentityToken) -> Session:
        self._set(BridgeState.EXCHANGING)
        try:
            backend = await self.exchanger.exchange(identity)
        except SessionExchangeError as e:
            self._set(BridgeState.FAILED, str(e))
            raise
        self.session = Session(identity=identity, backend=backend, host=self.host)
        self._set(BridgeState.READY)
        logger.info("Session ready for user %s (%s)", backend.user_id, self.host.kind.value)
        return self.session

    async def refresh(self) -> Session:
        """Silently renew both tokens; a failure destroys the session."""
        try:
            identity = await self.broker.acquire_silent()
            backend = await self.exchanger.exchange(identity)
        except Exception as e:
            logger.info("Silent refresh failed, session ended: %s", e)
            self.session = None
            if isinstance(e, SessionExchangeError):
                self._set(BridgeState.FAILED, str(e))
            else:
                self._set(BridgeState.SIGN_IN_REQUIRED, str(e) or e.__class__.__name__)
            raise
        self.session = Session(identity=identity, backend=backend, host=self.host)
        self._set(BridgeState.READY)
        return self.session

    async def ensure_fresh(self) -> Session:
        if self.session is None:
            raise AuthError("Not signed in")
        if self.session.identity.expires_within(self.refresh_skew):
            return await self.refresh()
        return self.session

    async def sign_out(self) -> None:
        await self.broker.sign_out()
        await self.exchanger.sign_out()
        self.session = None
        self._set(BridgeState.SIGNED_OUT)

    async def aclose(self) -> None:
        await self.broker.aclose()
