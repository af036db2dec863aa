"""Conversation storage backed by SQLAlchemy.

Plain functions do the synchronous work; SqlConversationStore and
SqlProfileDirectory wrap them in ``asyncio.to_thread`` for the orchestrator.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from app.ai.errors import ConversationNotFoundError, PersistenceError
from app.ai.types import HistoryEntry
from app.db.models import AIConversation, AIMessage, Profile
from app.db.session import get_session

DEFAULT_TITLE = "New Chat"


@dataclass(frozen=True)
class ConversationRecord:
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class MessageRecord:
    id: str
    role: str
    content: str
    created_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_conversation(row: AIConversation) -> ConversationRecord:
    return ConversationRecord(id=row.id, title=row.title, created_at=row.created_at, updated_at=row.updated_at)


def _to_message(row: AIMessage) -> MessageRecord:
    return MessageRecord(id=row.id, role=row.role, content=row.content, created_at=row.created_at)


def _owned_conversation(session, user_id: str, conversation_id: str) -> AIConversation:
    conversation = session.execute(
        select(AIConversation).where(AIConversation.id == conversation_id, AIConversation.user_id == user_id)
    ).scalar_one_or_none()
    if conversation is None:
        raise ConversationNotFoundError(conversation_id)
    return conversation


def _messages_of(session, conversation_id: str) -> list[AIMessage]:
    return list(
        session.execute(
            select(AIMessage).where(AIMessage.conversation_id == conversation_id).order_by(AIMessage.created_at.asc())
        ).scalars()
    )


# ---------------------------------------------------------------------------
# Synchronous operations
# ---------------------------------------------------------------------------


def owns_conversation(user_id: str, conversation_id: str) -> bool:
    with get_session() as session:
        owner = session.execute(
            select(AIConversation.user_id).where(AIConversation.id == conversation_id)
        ).scalar_one_or_none()
    return owner is not None and owner == user_id


def find_latest_conversation_id(user_id: str) -> str | None:
    with get_session() as session:
        return session.execute(
            select(AIConversation.id)
            .where(AIConversation.user_id == user_id)
            .order_by(AIConversation.updated_at.desc())
            .limit(1)
        ).scalar_one_or_none()


def create_conversation(user_id: str, title: str | None = None) -> ConversationRecord:
    with get_session() as session:
        conversation = AIConversation(user_id=user_id, title=title or DEFAULT_TITLE)
        session.add(conversation)
        session.flush()
        record = _to_conversation(conversation)
    logger.info("Conversation created", user_id=user_id, conversation_id=record.id)
    return record


def append_message(conversation_id: str, role: str, content: str) -> None:
    with get_session() as session:
        session.add(AIMessage(conversation_id=conversation_id, role=role, content=content))


def touch_conversation(conversation_id: str) -> None:
    with get_session() as session:
        conversation = session.get(AIConversation, conversation_id)
        if conversation is not None:
            conversation.updated_at = _utcnow()


def get_history_entries(conversation_id: str) -> list[HistoryEntry]:
    with get_session() as session:
        return [HistoryEntry(role=row.role, content=row.content) for row in _messages_of(session, conversation_id)]


def get_display_name(user_id: str) -> str | None:
    with get_session() as session:
        profile = session.get(Profile, user_id)
        if profile is None:
            return None
        return profile.full_name or profile.username


def list_conversations(user_id: str) -> list[ConversationRecord]:
    with get_session() as session:
        rows = session.execute(
            select(AIConversation).where(AIConversation.user_id == user_id).order_by(AIConversation.updated_at.desc())
        ).scalars()
        return [_to_conversation(row) for row in rows]


def get_conversation_messages(user_id: str, conversation_id: str | None = None) -> list[MessageRecord]:
    """Messages of ``conversation_id``, or of the user's latest conversation.

    Raises:
        ConversationNotFoundError: ``conversation_id`` is not one of the user's
    """
    with get_session() as session:
        if conversation_id:
            conversation = _owned_conversation(session, user_id, conversation_id)
        else:
            conversation = session.execute(
                select(AIConversation)
                .where(AIConversation.user_id == user_id)
                .order_by(AIConversation.updated_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            if conversation is None:
                return []
        return [_to_message(row) for row in _messages_of(session, conversation.id)]


def delete_conversation(user_id: str, conversation_id: str) -> None:
    with get_session() as session:
        conversation = _owned_conversation(session, user_id, conversation_id)
        session.execute(delete(AIMessage).where(AIMessage.conversation_id == conversation.id))
        session.delete(conversation)
    logger.info("Conversation deleted", user_id=user_id, conversation_id=conversation_id)


def rename_conversation(user_id: str, conversation_id: str, title: str) -> ConversationRecord:
    with get_session() as session:
        conversation = _owned_conversation(session, user_id, conversation_id)
        conversation.title = title
        conversation.updated_at = _utcnow()
        session.flush()
        return _to_conversation(conversation)


# ---------------------------------------------------------------------------
# Async adapters used by the orchestrator
# ---------------------------------------------------------------------------


async def _run(operation: str, func, *args):
    try:
        return await asyncio.to_thread(func, *args)
    except SQLAlchemyError as e:
        logger.error(f"[CONVERSATION_STORE] {operation} failed: {e}")
        raise PersistenceError(f"{operation} failed: {type(e).__name__}") from e


class SqlConversationStore:
    async def owns_conversation(self, user_id: str, conversation_id: str) -> bool:
        return await _run("owns_conversation", owns_conversation, user_id, conversation_id)

    async def find_latest_conversation(self, user_id: str) -> str | None:
        return await _run("find_latest_conversation", find_latest_conversation_id, user_id)

    async def create_conversation(self, user_id: str, title: str) -> str:
        record = await _run("create_conversation", create_conversation, user_id, title)
        return record.id

    async def append_message(self, conversation_id: str, role: str, content: str) -> None:
        await _run("append_message", append_message, conversation_id, role, content)

    async def touch_conversation(self, conversation_id: str) -> None:
        await _run("touch_conversation", touch_conversation, conversation_id)

    async def get_history(self, conversation_id: str) -> list[HistoryEntry]:
        return await _run("get_history", get_history_entries, conversation_id)


class SqlProfileDirectory:
    async def get_display_name(self, user_id: str) -> str | None:
        return await _run("get_display_name", get_display_name, user_id)
