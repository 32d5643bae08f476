"""Chat view-model: visible messages for the current mode and the send action."""

import logging

import httpx

from coach.chat.relay_client import RelayClient, RelayHTTPError
from coach.conversations.schemas import Message
from coach.conversations.service import ConversationStore
from coach.db.models import ROLE_ASSISTANT, ROLE_USER, VALID_MODES
from coach.llm.prompts import system_prompt_for, welcome_message_for

logger = logging.getLogger(__name__)


class ChatController:
    def __init__(self, relay: RelayClient, mode: str, store: ConversationStore | None = None):
        self.relay = relay
        self.store = store
        self.mode = mode
        self.messages: list[Message] = []
        self.is_loading = False
        self.switch_mode(mode)

    def switch_mode(self, mode: str) -> list[Message]:
        """Show ``mode``'s stored history, or its welcome message if there is none."""
        if mode not in VALID_MODES:
            raise ValueError(f"Unknown mode: {mode}")
        self.mode = mode
        stored = self.store.load(mode) if self.store else None
        self.messages = stored or [Message(role=ROLE_ASSISTANT, content=welcome_message_for(mode))]
        return self.messages

    @staticmethod
    def _history(messages: list[Message]) -> list[Message]:
        # The generation API expects the conversation to open with a user turn.
        for i, message in enumerate(messages):
            if message.role == ROLE_USER:
                return messages[i:]
        return []

    async def send(self, text: str) -> Message | None:
        """Relay ``text`` and append the reply. Blank input is ignored."""
        if not text or not text.strip() or self.is_loading:
            return None

        # The reply belongs to the mode the question was asked in, even if the
        # user switches mode before it arrives.
        mode, messages = self.mode, self.messages
        messages.append(Message(role=ROLE_USER, content=text.strip()))
        self.is_loading = True
        try:
            content = await self.relay.send(self._history(messages), system_prompt_for(mode))
        except RelayHTTPError as e:
            content = f"Error: {e.body}"
        except httpx.HTTPError as e:
            logger.warning("Relay request failed: %s", e)
            content = f"Error: {e}"
        finally:
            self.is_loading = False

        reply = Message(role=ROLE_ASSISTANT, content=content)
        messages.append(reply)
        if self.store:
            self.store.save(mode, messages)
        if self.mode == mode:
            self.messages = messages
        return reply
