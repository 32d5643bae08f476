"""Tests for the session bridge state machine."""

import asyncio
import time
from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest

from coach.session.bridge import BridgeState, SessionBridge
from coach.session.broker import IdentityBroker
from coach.session.errors import InteractionRequired, RedirectRequired, SessionExchangeError
from coach.session.exchanger import BackendSession, SessionExchanger
from coach.session.providers import EntraIdProvider, IdentityToken


def _identity(name="idp", ttl=3600):
    return IdentityToken(access_token=name, expires_at=time.time() + ttl, claims={"name": "Ada"})


class FakeBroker:
    def __init__(self, acquire=None, silent=None):
        self.acquire_outcome = acquire
        self.silent_outcome = silent
        self.calls: list[str] = []

    async def acquire(self, host, platform=None):
        self.calls.append("acquire")
        if isinstance(self.acquire_outcome, Exception):
            raise self.acquire_outcome
        return self.acquire_outcome or _identity()

    async def acquire_silent(self):
        self.calls.append("silent")
        if isinstance(self.silent_outcome, Exception):
            raise self.silent_outcome
        return self.silent_outcome or _identity("refreshed")

    async def complete_redirect(self, callback):
        self.calls.append("complete")
        return _identity("redirected")

    async def sign_out(self):
        self.calls.append("sign_out")

    async def aclose(self):
        self.calls.append("aclose")


class FakeExchanger:
    def __init__(self, error=None):
        self.error = error
        self.exchanged: list[str] = []
        self.signed_out = False

    async def exchange(self, identity):
        if self.error:
            raise self.error
        self.exchanged.append(identity.access_token)
        return BackendSession(access_token=f"sb-{identity.access_token}", user_id="user-1")

    async def sign_out(self):
        self.signed_out = True


def test_start_reaches_ready():
    states = []
    bridge = SessionBridge(FakeBroker(), FakeExchanger(), on_change=states.append)
    session = asyncio.run(bridge.start())

    assert bridge.state is BridgeState.READY
    assert session.user_id == "user-1"
    assert session.display_name == "Ada"
    assert session.backend.access_token == "sb-idp"
    assert not session.host.embedded
    assert states == [BridgeState.DETECTING, BridgeState.ACQUIRING, BridgeState.EXCHANGING, BridgeState.READY]


def test_redirect_is_recorded():
    bridge = SessionBridge(FakeBroker(acquire=RedirectRequired("https://login.example.com/authorize")), FakeExchanger())
    with pytest.raises(RedirectRequired):
        asyncio.run(bridge.start())
    assert bridge.state is BridgeState.REDIRECTING
    assert bridge.redirect_url == "https://login.example.com/authorize"
    assert bridge.session is None


def test_exchange_failure_is_terminal():
    bridge = SessionBridge(FakeBroker(), FakeExchanger(error=SessionExchangeError("JWT expired")))
    with pytest.raises(SessionExchangeError):
        asyncio.run(bridge.start())
    assert bridge.state is BridgeState.FAILED
    assert bridge.error == "JWT expired"
    assert bridge.session is None


def test_complete_redirect_after_round_trip():
    broker = FakeBroker(acquire=RedirectRequired("https://login.example.com/authorize"))
    exchanger = FakeExchanger()
    bridge = SessionBridge(broker, exchanger)
    with pytest.raises(RedirectRequired):
        asyncio.run(bridge.start())

    session = asyncio.run(bridge.complete_redirect("#code=abc&state=1"))
    assert bridge.state is BridgeState.READY
    assert bridge.redirect_url is None
    assert session.identity.access_token == "redirected"


def test_refresh_failure_destroys_session():
    broker = FakeBroker(silent=InteractionRequired("refresh token expired"))
    bridge = SessionBridge(broker, FakeExchanger())
    asyncio.run(bridge.start())

    with pytest.raises(InteractionRequired):
        asyncio.run(bridge.refresh())
    assert bridge.session is None
    assert bridge.state is BridgeState.SIGN_IN_REQUIRED
    assert bridge.error == "refresh token expired"


def test_ensure_fresh_refreshes_expiring_identity():
    broker = FakeBroker(acquire=_identity(ttl=30))
    exchanger = FakeExchanger()
    bridge = SessionBridge(broker, exchanger, refresh_skew=300)
    asyncio.run(bridge.start())

    session = asyncio.run(bridge.ensure_fresh())
    assert broker.calls == ["acquire", "silent"]
    assert session.identity.access_token == "refreshed"
    assert exchanger.exchanged == ["idp", "refreshed"]


def test_ensure_fresh_keeps_valid_identity():
    broker = FakeBroker()
    bridge = SessionBridge(broker, FakeExchanger(), refresh_skew=300)
    first = asyncio.run(bridge.start())
    assert asyncio.run(bridge.ensure_fresh()) is first
    assert broker.calls == ["acquire"]


def test_sign_out():
    broker = FakeBroker()
    exchanger = FakeExchanger()
    bridge = SessionBridge(broker, exchanger)
    asyncio.run(bridge.start())
    asyncio.run(bridge.sign_out())

    assert bridge.state is BridgeState.SIGNED_OUT
    assert bridge.session is None
    assert exchanger.signed_out
    assert broker.calls[-1] == "sign_out"


@pytest.mark.parametrize(
    "error",
    [httpx.ConnectError("login.microsoftonline.com unreachable"), RuntimeError("token cache corrupted")],
)
def test_refresh_network_failure_destroys_session(error):
    bridge = SessionBridge(FakeBroker(silent=error), FakeExchanger())
    asyncio.run(bridge.start())

    with pytest.raises(type(error)):
        asyncio.run(bridge.refresh())
    assert bridge.session is None
    assert bridge.state is BridgeState.SIGN_IN_REQUIRED
    assert bridge.error


def test_refresh_exchange_failure_is_terminal():
    exchanger = FakeExchanger()
    bridge = SessionBridge(FakeBroker(), exchanger)
    asyncio.run(bridge.start())

    exchanger.error = SessionExchangeError("Invalid JWT")
    with pytest.raises(SessionExchangeError):
        asyncio.run(bridge.refresh())
    assert bridge.session is None
    assert bridge.state is BridgeState.FAILED
    assert bridge.error == "Invalid JWT"


def test_aclose_closes_broker():
    broker = FakeBroker()
    asyncio.run(SessionBridge(broker, FakeExchanger()).aclose())
    assert broker.calls == ["aclose"]


# --- embedded sign-in against Entra ID ---

SCOPES = ["openid", "profile", "email", "api://test-client/access_as_user"]


class TeamsHost:
    name = "teams"

    def __init__(self):
        self.popups: list[str] = []

    async def initialize(self):
        pass

    async def get_auth_token(self):
        return "teams-sso-token"

    async def authenticate(self, url):
        # The user closes the Teams auth window.
        self.popups.append(url)
        return ""


class EntraTokenEndpoint:
    def __init__(self):
        self.grants: list[dict[str, str]] = []
        self.responses: list[httpx.Response] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.grants.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        return self.responses.pop(0)


class SupabaseAuth:
    def __init__(self):
        self.credentials = None

    def sign_in_with_id_token(self, credentials):
        self.credentials = credentials
        session = SimpleNamespace(
            access_token="sb-access",
            refresh_token="sb-refresh",
            expires_at=int(time.time()) + 3600,
            user=SimpleNamespace(id="sb-user-1"),
        )
        return SimpleNamespace(session=session)


class Supabase:
    def __init__(self):
        self.auth = SupabaseAuth()
        self.postgrest = SimpleNamespace(auth=lambda token: None)


def _embedded_bridge(endpoint):
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint))
    provider = EntraIdProvider(
        "test-client", "test-tenant", "https://app.example.com/", client_secret="s3cret", http=http
    )
    exchanger = SessionExchanger(Supabase())
    broker = IdentityBroker(provider, SCOPES, require_id_token=exchanger.requires_id_token)
    return SessionBridge(broker, exchanger, platform=TeamsHost()), exchanger


def test_embedded_sign_in_refreshes_for_an_id_token(make_unsigned_token):
    endpoint = EntraTokenEndpoint()
    # On-behalf-of answers carry no ID token.
    endpoint.responses.append(httpx.Response(200, json={
        "access_token": make_unsigned_token(sub="sub-1", aud="api://test-client"),
        "refresh_token": "obo-refresh",
        "expires_in": 3600,
    }))
    endpoint.responses.append(httpx.Response(200, json={
        "access_token": make_unsigned_token(sub="sub-1", aud="api://test-client"),
        "id_token": make_unsigned_token(sub="sub-1", oid="user-1", name="Ada Lovelace"),
        "refresh_token": "refresh-2",
        "expires_in": 3600,
    }))
    bridge, exchanger = _embedded_bridge(endpoint)

    session = asyncio.run(bridge.start())

    assert bridge.state is BridgeState.READY
    assert session.host.embedded
    assert session.user_id == "sb-user-1"
    assert session.display_name == "Ada Lovelace"
    assert [g["grant_type"] for g in endpoint.grants] == [
        "urn:ietf:params:oauth:grant-type:jwt-bearer",
        "refresh_token",
    ]
    assert endpoint.grants[1]["refresh_token"] == "obo-refresh"
    assert exchanger.db.auth.credentials["token"] == session.identity.id_token


def test_embedded_sign_in_without_id_token_falls_back_to_redirect(make_unsigned_token):
    endpoint = EntraTokenEndpoint()
    endpoint.responses.append(httpx.Response(200, json={
        "access_token": make_unsigned_token(sub="sub-1", aud="api://test-client"),
        "expires_in": 3600,
    }))
    bridge, exchanger = _embedded_bridge(endpoint)

    with pytest.raises(RedirectRequired):
        asyncio.run(bridge.start())

    assert bridge.state is BridgeState.REDIRECTING
    assert bridge.redirect_url.startswith("https://login.microsoftonline.com/test-tenant/oauth2/v2.0/authorize?")
    assert len(bridge.platform.popups) == 1
    assert exchanger.db.auth.credentials is None
