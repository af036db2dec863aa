"""Collaborator interfaces the orchestrator depends on."""

from __future__ import annotations

from typing import Protocol

from app.ai.types import HistoryEntry


class ConversationStore(Protocol):
    """Conversation persistence.

    Implementations raise PersistenceError on storage failures.
    """

    async def owns_conversation(self, user_id: str, conversation_id: str) -> bool: ...

    async def find_latest_conversation(self, user_id: str) -> str | None: ...

    async def create_conversation(self, user_id: str, title: str) -> str: ...

    async def append_message(self, conversation_id: str, role: str, content: str) -> None: ...

    async def touch_conversation(self, conversation_id: str) -> None: ...

    async def get_history(self, conversation_id: str) -> list[HistoryEntry]: ...


class ProfileDirectory(Protocol):
    async def get_display_name(self, user_id: str) -> str | None: ...
