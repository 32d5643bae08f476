"""Top-level client flow: sign-in screens, mode selection and chat."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from coach.chat.controller import ChatController
from coach.chat.relay_client import RelayClient
from coach.config.settings import Settings, get_settings
from coach.conversations.schemas import Message
from coach.conversations.service import ConversationStore
from coach.db.client import get_supabase
from coach.session.bridge import Session, SessionBridge
from coach.session.broker import IdentityBroker
from coach.session.errors import AuthError, RedirectRequired, SessionExchangeError
from coach.session.exchanger import SessionExchanger
from coach.session.host import HostPlatform
from coach.session.providers import PopupLauncher, build_provider, default_scopes

logger = logging.getLogger(__name__)


class Screen(str, Enum):
    PREPARING = "preparing"
    REDIRECTING = "redirecting"
    SIGN_IN = "sign_in"
    ERROR = "error"
    MODE_SELECT = "mode_select"
    CHAT = "chat"


@dataclass
class View:
    screen: Screen
    message: str | None = None
    redirect_url: str | None = None
    can_retry: bool = False


StoreFactory = Callable[[Session], ConversationStore]


class CoachApp:
    """Drives the screens a front end renders.

    Every failure in ``start``, ``complete_redirect`` and ``send`` ends on a
    sign-in prompt or an error screen with a retry action.
    """

    def __init__(self, bridge: SessionBridge, relay: RelayClient, store_factory: StoreFactory | None = None):
        self.bridge = bridge
        self.relay = relay
        self._store_factory = store_factory
        self.view = View(Screen.PREPARING, "Preparing session...")
        self.chat: ChatController | None = None
        self.last_mode: str | None = None

    @property
    def session(self) -> Session | None:
        return self.bridge.session

    async def start(self) -> View:
        self.view = View(Screen.PREPARING, "Preparing session...")
        try:
            await self.bridge.start()
        except Exception as e:
            return self._fail(e)
        return self._signed_in()

    async def complete_redirect(self, callback: str) -> View:
        self.view = View(Screen.PREPARING, "Preparing session...")
        try:
            await self.bridge.complete_redirect(callback)
        except Exception as e:
            return self._fail(e)
        return self._signed_in()

    async def retry(self) -> View:
        return await self.start()

    def _signed_in(self) -> View:
        self.chat = None
        if self.last_mode:
            return self.select_mode(self.last_mode)
        self.view = View(Screen.MODE_SELECT)
        return self.view

    def _fail(self, exc: Exception) -> View:
        self.chat = None
        if isinstance(exc, RedirectRequired):
            self.view = View(Screen.REDIRECTING, "Redirecting to sign-in...", redirect_url=exc.url)
        elif isinstance(exc, SessionExchangeError):
            self.view = View(Screen.ERROR, str(exc), can_retry=True)
        elif isinstance(exc, AuthError):
            self.view = View(Screen.SIGN_IN, str(exc) or "Please sign in to continue.", can_retry=True)
        else:
            logger.exception("Sign-in flow failed")
            self.view = View(Screen.ERROR, str(exc) or exc.__class__.__name__, can_retry=True)
        return self.view

    def select_mode(self, mode: str) -> View:
        if self.session is None:
            self.view = View(Screen.SIGN_IN, "Please sign in to continue.", can_retry=True)
            return self.view
        if self.chat is None:
            store = self._store_factory(self.session) if self._store_factory else None
            self.chat = ChatController(self.relay, mode, store)
        else:
            self.chat.switch_mode(mode)
        self.last_mode = mode
        self.view = View(Screen.CHAT)
        return self.view

    async def send(self, text: str) -> Message | None:
        if self.chat is None:
            return None
        try:
            reply = await self.chat.send(text)
        except AuthError as e:
            self._fail(e)
            return None
        except Exception as e:
            logger.exception("Chat turn failed")
            self.view = View(Screen.CHAT, str(e) or e.__class__.__name__)
            return None
        if self.session is None:
            # A failed token refresh ended the session during the turn.
            self._fail(AuthError(self.bridge.error or "Please sign in to continue."))
        return reply

    async def sign_out(self) -> View:
        await self.bridge.sign_out()
        self.chat = None
        self.view = View(Screen.SIGN_IN, "You have been signed out.", can_retry=True)
        return self.view

    async def aclose(self) -> None:
        """Close the HTTP clients opened for the relay and the identity provider."""
        await self.relay.aclose()
        await self.bridge.aclose()


def build_app(
    settings: Settings | None = None,
    platform: HostPlatform | None = None,
    popup: PopupLauncher | None = None,
    http: httpx.AsyncClient | None = None,
) -> CoachApp:
    """Wire a CoachApp from settings."""
    settings = settings or get_settings()
    exchanger = SessionExchanger(
        get_supabase(),
        strategy=settings.SESSION_EXCHANGE_STRATEGY,
        id_token_provider=settings.SUPABASE_ID_TOKEN_PROVIDER,
    )
    broker = IdentityBroker(
        build_provider(settings, http=http),
        default_scopes(settings),
        popup=popup,
        require_id_token=exchanger.requires_id_token,
    )
    bridge = SessionBridge(
        broker,
        exchanger,
        platform=platform,
        detect_timeout=settings.HOST_DETECT_TIMEOUT_SECONDS,
        refresh_skew=settings.TOKEN_REFRESH_SKEW_SECONDS,
    )

    async def relay_token() -> str:
        session = await bridge.ensure_fresh()
        return session.identity.access_token

    relay = RelayClient(settings.RELAY_URL, token_source=relay_token, http=http)
    return CoachApp(
        bridge,
        relay,
        store_factory=lambda session: ConversationStore(exchanger.db, session.user_id),
    )
