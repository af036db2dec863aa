from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from loguru import logger

from app.ai.errors import AgentServiceError, ConversationNotFoundError, CredentialError
from app.ai.factory import get_orchestrator
from app.ai.orchestrator import AgentOrchestrator
from app.api.dependencies.auth import get_current_user_id
from app.db import conversation_repository as conversations
from app.db.conversation_repository import ConversationRecord, MessageRecord
from app.schemas.ai_chat import (
    AgentChatRequest,
    AgentChatResponse,
    ChatMessage,
    ConversationSummary,
    CreateConversationRequest,
    RenameConversationRequest,
)

router = APIRouter(prefix="/ai", tags=["ai"])


def _summary(record: ConversationRecord) -> ConversationSummary:
    return ConversationSummary(id=record.id, title=record.title, created_at=record.created_at, updated_at=record.updated_at)


def _message(record: MessageRecord) -> ChatMessage:
    return ChatMessage(id=record.id, role=record.role, content=record.content, created_at=record.created_at)


def _not_found(conversation_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Conversation not found: {conversation_id}")


@router.post("/chat/agent", response_model=AgentChatResponse)
async def chat_with_agent(
    req: AgentChatRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> AgentChatResponse:
    """Send a message to one of the agents and return its reply."""
    if not req.text or not req.text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message text is required")

    logger.info(f"AI chat request for {req.agent_type.value} agent", user_id=user_id, conversation_id=req.conversation_id)
    try:
        result = await orchestrator.exchange(
            user_id,
            req.text,
            conversation_id=req.conversation_id,
            agent_type=req.agent_type,
        )
    except ConversationNotFoundError as e:
        raise _not_found(e.conversation_id) from e
    except AgentServiceError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message) from e
    except CredentialError as e:
        logger.error("Agent credential error", error=str(e), user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Agent service is not configured correctly",
        ) from e

    return AgentChatResponse(response=result.text, conversation_id=result.conversation_id)


@router.get("/chat/history", response_model=list[ChatMessage])
def get_chat_history(
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    user_id: str = Depends(get_current_user_id),
) -> list[ChatMessage]:
    try:
        records = conversations.get_conversation_messages(user_id, conversation_id)
    except ConversationNotFoundError as e:
        raise _not_found(e.conversation_id) from e
    return [_message(record) for record in records]


@router.get("/conversations", response_model=list[ConversationSummary])
def list_conversations(user_id: str = Depends(get_current_user_id)) -> list[ConversationSummary]:
    return [_summary(record) for record in conversations.list_conversations(user_id)]


@router.post("/conversations", response_model=ConversationSummary, status_code=status.HTTP_201_CREATED)
def create_conversation(
    req: CreateConversationRequest | None = None,
    user_id: str = Depends(get_current_user_id),
) -> ConversationSummary:
    title = req.title.strip() if req and req.title else None
    return _summary(conversations.create_conversation(user_id, title or None))


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_conversation(conversation_id: str, user_id: str = Depends(get_current_user_id)) -> Response:
    try:
        conversations.delete_conversation(user_id, conversation_id)
    except ConversationNotFoundError as e:
        raise _not_found(e.conversation_id) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/conversations/{conversation_id}", response_model=ConversationSummary)
def rename_conversation(
    conversation_id: str,
    req: RenameConversationRequest,
    user_id: str = Depends(get_current_user_id),
) -> ConversationSummary:
    title = req.title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
    try:
        return _summary(conversations.rename_conversation(user_id, conversation_id, title))
    except ConversationNotFoundError as e:
        raise _not_found(e.conversation_id) from e
