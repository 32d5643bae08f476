"""Identity providers: Microsoft Entra ID and Clerk over plain OAuth/HTTP."""

import base64
import hashlib
import logging
import secrets
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, quote, urlencode, urlsplit

import httpx
import jwt

from coach.auth.jwt import unverified_claims
from coach.config.settings import Settings
from coach.session.errors import (
    AuthError,
    IdentityProviderError,
    InteractionRequired,
    PopupFailed,
)

logger = logging.getLogger(__name__)

# Given an authorize URL, show it in a popup and return the URL (or bare
# fragment/query) the provider redirected the popup to.
PopupLauncher = Callable[[str], Awaitable[str]]

INTERACTION_ERRORS = {"interaction_required", "login_required", "consent_required", "invalid_grant"}
OBO_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
CLERK_API_URL = "https://api.clerk.com/v1"


@dataclass
class IdentityToken:
    access_token: str
    expires_at: float
    id_token: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    def expires_within(self, seconds: float) -> bool:
        return self.expires_at - time.time() <= seconds

    @property
    def subject(self) -> str:
        return self.claims.get("oid") or self.claims.get("sub", "")

    @property
    def display_name(self) -> str:
        return self.claims.get("name") or self.claims.get("preferred_username") or self.claims.get("email", "")


def _safe_claims(token: str | None) -> dict:
    if not token:
        return {}
    try:
        return unverified_claims(token)
    except jwt.PyJWTError:
        return {}


def parse_callback(callback: str) -> dict[str, str]:
    """Read OAuth response parameters from a redirect URL, ``#fragment`` or ``?query``."""
    parts = urlsplit(callback)
    raw = parts.fragment or parts.query
    if not raw and not parts.scheme and not parts.netloc:
        raw = callback.lstrip("#?")
    return {k: v[0] for k, v in parse_qs(raw).items()}


class IdentityProvider(ABC):
    name: str

    def __init__(self, http: httpx.AsyncClient | None = None):
        self._http = http or httpx.AsyncClient()
        self._owns_http = http is None

    @abstractmethod
    async def acquire_silent(self, scopes: list[str], force_refresh: bool = False) -> IdentityToken:
        """Return a token without user interaction or raise InteractionRequired."""
        ...

    @abstractmethod
    async def acquire_popup(self, scopes: list[str], launcher: PopupLauncher | None) -> IdentityToken:
        ...

    @abstractmethod
    def redirect_url(self, scopes: list[str]) -> str:
        ...

    @abstractmethod
    async def complete_redirect(self, callback: str) -> IdentityToken:
        ...

    async def exchange_host_token(self, host_token: str, scopes: list[str]) -> IdentityToken:
        raise InteractionRequired(f"{self.name} cannot exchange host platform tokens")

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()


class EntraIdProvider(IdentityProvider):
    """Microsoft Entra ID (Azure AD) v2 endpoints with PKCE and a refresh-token cache."""

    name = "entra"

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        redirect_uri: str,
        client_secret: str = "",
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__(http)
        if not client_id or not tenant_id:
            raise ValueError("Azure AD configuration is missing. Please check your environment variables.")
        self.client_id = client_id
        self.authority = f"https://login.microsoftonline.com/{tenant_id}"
        self.redirect_uri = redirect_uri
        self._client_secret = client_secret
        self._token: IdentityToken | None = None
        self._refresh_token: str | None = None
        # state -> PKCE code verifier for flows started but not completed
        self._pending: dict[str, str] = {}

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @staticmethod
    def _scope(scopes: list[str]) -> str:
        return " ".join(dict.fromkeys([*scopes, "offline_access"]))

    async def _token_request(self, data: dict[str, str]) -> IdentityToken:
        data = {"client_id": self.client_id, **data}
        if self._client_secret:
            data["client_secret"] = self._client_secret
        response = await self._http.post(self.token_endpoint, data=data)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code >= 400:
            code = payload.get("error", f"http_{response.status_code}")
            description = payload.get("error_description", response.text)
            if code in INTERACTION_ERRORS or payload.get("suberror") in INTERACTION_ERRORS:
                raise InteractionRequired(description)
            raise IdentityProviderError(code, description)
        return self._store(payload)

    def _store(self, payload: dict) -> IdentityToken:
        id_token = payload.get("id_token")
        claims = _safe_claims(id_token) or _safe_claims(payload["access_token"])
        token = IdentityToken(
            access_token=payload["access_token"],
            expires_at=time.time() + int(payload.get("expires_in", 3600)),
            id_token=id_token,
            claims=claims,
        )
        if payload.get("refresh_token"):
            self._refresh_token = payload["refresh_token"]
        self._token = token
        return token

    async def acquire_silent(self, scopes: list[str], force_refresh: bool = False) -> IdentityToken:
        if self._token and not force_refresh and not self._token.expires_within(60):
            return self._token
        if not self._refresh_token:
            raise InteractionRequired("No cached account; interactive sign-in required")
        logger.debug("Refreshing Entra ID token silently")
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token,
            "scope": self._scope(scopes),
        })

    async def acquire_popup(self, scopes: list[str], launcher: PopupLauncher | None) -> IdentityToken:
        if launcher is None:
            raise PopupFailed("No popup available in this context")
        try:
            callback = await launcher(self.redirect_url(scopes))
        except AuthError:
            raise
        except Exception as e:
            raise PopupFailed(f"Popup sign-in failed: {e}") from e
        if not callback:
            raise PopupFailed("Popup closed before sign-in completed")
        return await self.complete_redirect(callback)

    def redirect_url(self, scopes: list[str]) -> str:
        state = secrets.token_urlsafe(16)
        verifier = secrets.token_urlsafe(48)
        challenge = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b"=").decode()
        self._pending[state] = verifier
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "response_mode": "fragment",
            "redirect_uri": self.redirect_uri,
            "scope": self._scope(scopes),
            "state": state,
            "nonce": secrets.token_urlsafe(16),
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def complete_redirect(self, callback: str) -> IdentityToken:
        params = parse_callback(callback)
        if "error" in params:
            if params["error"] in INTERACTION_ERRORS:
                raise InteractionRequired(params.get("error_description", params["error"]))
            raise IdentityProviderError(params["error"], params.get("error_description", ""))
        verifier = self._pending.pop(params.get("state", ""), None)
        if verifier is None:
            raise IdentityProviderError("state_mismatch", "Authentication response does not match a pending request")
        if "code" not in params:
            raise IdentityProviderError("invalid_response", "No authorization code in the redirect URL")
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": params["code"],
            "redirect_uri": self.redirect_uri,
            "code_verifier": verifier,
        })

    async def exchange_host_token(self, host_token: str, scopes: list[str]) -> IdentityToken:
        if not self._client_secret:
            raise InteractionRequired("On-behalf-of exchange needs a client secret")
        return await self._token_request({
            "grant_type": OBO_GRANT,
            "assertion": host_token,
            "requested_token_use": "on_behalf_of",
            "scope": self._scope(scopes),
        })

    async def sign_out(self) -> None:
        self._token = None
        self._refresh_token = None
        self._pending.clear()


class ClerkProvider(IdentityProvider):
    """Clerk sessions; tokens are minted from a JWT template via the Backend API."""

    name = "clerk"

    def __init__(
        self,
        secret_key: str,
        sign_in_url: str,
        redirect_uri: str,
        template: str = "supabase",
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__(http)
        if not secret_key:
            raise ValueError("Missing Clerk secret key")
        self._secret_key = secret_key
        self.sign_in_url = sign_in_url
        self.redirect_uri = redirect_uri
        self.template = template
        self.session_id: str | None = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._secret_key}"}

    async def acquire_silent(self, scopes: list[str], force_refresh: bool = False) -> IdentityToken:
        if not self.session_id:
            raise InteractionRequired("No active Clerk session")
        response = await self._http.post(
            f"{CLERK_API_URL}/sessions/{self.session_id}/tokens/{self.template}",
            headers=self._headers(),
        )
        if response.status_code in (401, 403, 404):
            self.session_id = None
            raise InteractionRequired(f"Clerk session is no longer active ({response.status_code})")
        if response.status_code >= 400:
            raise IdentityProviderError(f"http_{response.status_code}", response.text)
        token = response.json().get("jwt")
        if not token:
            raise IdentityProviderError("invalid_response", f"Could not get {self.template} token from Clerk.")
        claims = _safe_claims(token)
        return IdentityToken(
            access_token=token,
            expires_at=float(claims.get("exp", time.time() + 60)),
            claims=claims,
        )

    async def acquire_popup(self, scopes: list[str], launcher: PopupLauncher | None) -> IdentityToken:
        raise PopupFailed("Clerk sign-in does not support popups")

    def redirect_url(self, scopes: list[str]) -> str:
        return f"{self.sign_in_url}?redirect_url={quote(self.redirect_uri, safe='')}"

    async def complete_redirect(self, callback: str) -> IdentityToken:
        session_token = parse_callback(callback).get("__session")
        sid = _safe_claims(session_token).get("sid")
        if not sid:
            raise IdentityProviderError("invalid_response", "No Clerk session in the redirect URL")
        self.session_id = sid
        return await self.acquire_silent([])

    async def sign_out(self) -> None:
        if not self.session_id:
            return
        session_id, self.session_id = self.session_id, None
        response = await self._http.post(f"{CLERK_API_URL}/sessions/{session_id}/revoke", headers=self._headers())
        if response.status_code >= 400:
            logger.warning("Clerk session revoke failed: %d", response.status_code)


def default_scopes(settings: Settings) -> list[str]:
    if settings.IDENTITY_PROVIDER == "entra":
        return ["openid", "profile", "email", f"api://{settings.AZURE_CLIENT_ID}/access_as_user"]
    return []


def build_provider(settings: Settings, http: httpx.AsyncClient | None = None) -> IdentityProvider:
    if settings.IDENTITY_PROVIDER == "entra":
        return EntraIdProvider(
            client_id=settings.AZURE_CLIENT_ID,
            tenant_id=settings.AZURE_TENANT_ID,
            redirect_uri=settings.REDIRECT_URI,
            client_secret=settings.AZURE_CLIENT_SECRET,
            http=http,
        )
    if settings.IDENTITY_PROVIDER == "clerk":
        return ClerkProvider(
            secret_key=settings.CLERK_SECRET_KEY,
            sign_in_url=settings.CLERK_SIGN_IN_URL,
            redirect_uri=settings.REDIRECT_URI,
            template=settings.CLERK_JWT_TEMPLATE,
            http=http,
        )
    raise ValueError(f"Unknown identity provider: {settings.IDENTITY_PROVIDER}")
