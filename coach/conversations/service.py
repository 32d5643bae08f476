"""Per-user conversation persistence, one row per (user, mode)."""

import logging

from pydantic import ValidationError
from supabase import Client

from coach.conversations import repository
from coach.conversations.schemas import Message
from coach.db.models import VALID_MODES

logger = logging.getLogger(__name__)


def _check_mode(mode: str) -> None:
    if mode not in VALID_MODES:
        raise ValueError(f"Unknown mode: {mode}")


class ConversationStore:
    """Loads and saves conversations with the signed-in user's database session.

    Persistence is opportunistic: read and write failures are logged and the
    chat carries on with whatever is in memory.
    """

    def __init__(self, db: Client, user_id: str):
        self._db = db
        self.user_id = user_id

    def load(self, mode: str) -> list[Message] | None:
        _check_mode(mode)
        try:
            row = repository.get_by_mode(self._db, self.user_id, mode)
        except Exception:
            logger.exception("Failed to load %s conversation for user %s", mode, self.user_id)
            return None
        if not row or not row.get("messages"):
            return None
        try:
            return [Message.model_validate(m) for m in row["messages"]]
        except ValidationError:
            logger.warning("Discarding malformed %s conversation for user %s", mode, self.user_id)
            return None

    def save(self, mode: str, messages: list[Message]) -> bool:
        _check_mode(mode)
        try:
            repository.upsert(self._db, self.user_id, mode, [m.model_dump() for m in messages])
        except Exception:
            logger.exception("Failed to save %s conversation for user %s", mode, self.user_id)
            return False
        return True
