"""Request and response bodies of the /ai chat API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.ai.types import AgentType


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AgentChatRequest(_CamelModel):
    text: str
    conversation_id: str | None = Field(default=None, alias="conversationId")
    agent_type: AgentType = Field(default=AgentType.RECEPTION, alias="agentType")


class AgentChatResponse(_CamelModel):
    response: str
    conversation_id: str | None = Field(default=None, alias="conversationId")


class ChatMessage(_CamelModel):
    id: str
    role: str
    content: str
    created_at: datetime = Field(alias="createdAt")


class ConversationSummary(_CamelModel):
    id: str
    title: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class CreateConversationRequest(_CamelModel):
    title: str | None = None


class RenameConversationRequest(_CamelModel):
    title: str
