"""Assistant conversation history and confirmation state.

History rows live in ai_chat_history (sender is stored as 'user' or 'ai').
The per-user confirmation state lives in ai_chat_state, one row per user.
"""

from datetime import datetime, timezone
from typing import Any

from supabase import Client

from portal_assistant.core.logging import get_logger
from portal_assistant.core.schemas_workspace import (
    ConversationState,
    ConversationStatus,
    ConversationTurn,
    Sender,
)

logger = get_logger(__name__)

_DB_SENDER = {Sender.USER: "user", Sender.ASSISTANT: "ai"}


def _turn_from_row(row: dict[str, Any]) -> ConversationTurn:
    sender = Sender.ASSISTANT if row.get("sender") in ("ai", "assistant") else Sender.USER
    return ConversationTurn(
        sender=sender,
        content=row.get("content") or "",
        created_at=row.get("created_at"),
    )


class HistoryStore:
    """Append-only conversation turns per user."""

    def __init__(self, client: Client):
        self.client = client

    def append(self, user_id: str, turn: ConversationTurn) -> None:
        """Persist one turn. History is best-effort: failures are logged, not raised."""
        try:
            self.client.table("ai_chat_history").insert(
                {
                    "user_id": user_id,
                    "sender": _DB_SENDER[turn.sender],
                    "content": turn.content,
                }
            ).execute()
        except Exception as e:
            logger.error(f"Failed to append {turn.sender.value} turn for user {user_id}: {e}")

    def recent(self, user_id: str, limit: int) -> list[ConversationTurn]:
        """Most recent `limit` turns, returned oldest first."""
        response = (
            self.client.table("ai_chat_history")
            .select("sender, content, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        rows = response.data or []
        return [_turn_from_row(r) for r in reversed(rows)]

    def rewrite_latest_user_turn(self, user_id: str, content: str) -> None:
        """Replace the content of the newest user turn (voice message transcription)."""
        try:
            response = (
                self.client.table("ai_chat_history")
                .select("id")
                .eq("user_id", user_id)
                .eq("sender", "user")
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
            if not response.data:
                return
            row_id = response.data[0]["id"]
            self.client.table("ai_chat_history").update({"content": content}).eq("id", row_id).execute()
        except Exception as e:
            logger.error(f"Failed to rewrite latest user turn for user {user_id}: {e}")


class ConversationStateStore:
    """Explicit Idle / AwaitingConfirmation state per user."""

    def __init__(self, client: Client):
        self.client = client

    def get(self, user_id: str) -> ConversationState:
        try:
            response = (
                self.client.table("ai_chat_state")
                .select("status, pending_action, requested_at")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Failed to load conversation state for user {user_id}: {e}")
            return ConversationState()

        if not response.data:
            return ConversationState()
        row = response.data[0]
        try:
            return ConversationState(
                status=row.get("status") or ConversationStatus.IDLE,
                pending_action=row.get("pending_action"),
                requested_at=row.get("requested_at"),
            )
        except ValueError:
            logger.warning(f"Ignoring unreadable conversation state for user {user_id}")
            return ConversationState()

    def await_confirmation(self, user_id: str, pending_action: dict[str, Any]) -> None:
        self._save(
            user_id,
            {
                "status": ConversationStatus.AWAITING_CONFIRMATION.value,
                "pending_action": pending_action,
                "requested_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def clear(self, user_id: str) -> None:
        self._save(
            user_id,
            {"status": ConversationStatus.IDLE.value, "pending_action": None, "requested_at": None},
        )

    def _save(self, user_id: str, fields: dict[str, Any]) -> None:
        try:
            self.client.table("ai_chat_state").upsert(
                {"user_id": user_id, **fields}, on_conflict="user_id"
            ).execute()
        except Exception as e:
            logger.error(f"Failed to save conversation state for user {user_id}: {e}")
