"""Data access layer for conversations."""

from datetime import datetime, timezone

from supabase import Client

from coach.config.settings import get_settings


def _table(db: Client):
    return db.table(get_settings().CONVERSATIONS_TABLE)


def get_by_mode(db: Client, user_id: str, mode: str) -> dict | None:
    result = _table(db).select("*").eq("user_id", user_id).eq("mode", mode).limit(1).execute()
    return result.data[0] if result.data else None


def upsert(db: Client, user_id: str, mode: str, messages: list[dict]) -> dict | None:
    row = {
        "user_id": user_id,
        "mode": mode,
        "messages": messages,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    result = _table(db).upsert(row, on_conflict="user_id,mode").execute()
    return result.data[0] if result.data else None
