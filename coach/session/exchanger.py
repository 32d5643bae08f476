"""Trade an identity token for a Supabase session."""

import logging
from dataclasses import dataclass

from supabase import Client

from coach.session.errors import SessionExchangeError
from coach.session.providers import IdentityToken

logger = logging.getLogger(__name__)

ID_TOKEN = "id_token"
THIRD_PARTY = "third_party"
STRATEGIES = (ID_TOKEN, THIRD_PARTY)


@dataclass
class BackendSession:
    access_token: str
    user_id: str
    refresh_token: str | None = None
    expires_at: float | None = None


class SessionExchanger:
    """Mints the database session used for conversation storage.

    ``id_token``: Supabase verifies the provider's OIDC ID token and issues its
    own session. ``third_party``: the provider token is already a Supabase JWT
    (e.g. a Clerk JWT template) and is attached to PostgREST as-is.
    """

    def __init__(self, db: Client, strategy: str = ID_TOKEN, id_token_provider: str = "azure"):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown session exchange strategy: {strategy}")
        self.db = db
        self.strategy = strategy
        self.id_token_provider = id_token_provider

    @property
    def requires_id_token(self) -> bool:
        return self.strategy == ID_TOKEN

    async def exchange(self, identity: IdentityToken) -> BackendSession:
        if self.strategy == THIRD_PARTY:
            return self._attach(identity)
        return self._sign_in(identity)

    def _sign_in(self, identity: IdentityToken) -> BackendSession:
        if not identity.id_token:
            raise SessionExchangeError("Identity provider did not return an ID token.")
        try:
            response = self.db.auth.sign_in_with_id_token({
                "provider": self.id_token_provider,
                "token": identity.id_token,
            })
        except Exception as e:
            logger.error("Error setting Supabase session: %s", e)
            raise SessionExchangeError(str(e)) from e

        session = response.session
        if session is None:
            raise SessionExchangeError("Supabase did not return a session.")
        self.db.postgrest.auth(session.access_token)
        return BackendSession(
            access_token=session.access_token,
            user_id=session.user.id if session.user else identity.subject,
            refresh_token=session.refresh_token,
            expires_at=float(session.expires_at) if session.expires_at else None,
        )

    def _attach(self, identity: IdentityToken) -> BackendSession:
        user_id = identity.claims.get("sub")
        if not user_id:
            raise SessionExchangeError("Could not get Supabase token: no subject claim.")
        if identity.expires_within(0):
            raise SessionExchangeError("Supabase token has already expired.")
        self.db.postgrest.auth(identity.access_token)
        return BackendSession(
            access_token=identity.access_token,
            user_id=user_id,
            expires_at=identity.expires_at,
        )

    async def sign_out(self) -> None:
        if self.strategy == ID_TOKEN:
            try:
                self.db.auth.sign_out()
            except Exception as e:
                logger.warning("Supabase sign-out failed: %s", e)
