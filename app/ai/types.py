"""Types shared by the AI agent pipeline.

Everything here is immutable: one AgentRequest per call, one
NormalizedAgentResponse per agent reply, one RetryPolicy per configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from app.config.settings import Settings

DEFAULT_RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 429, *range(500, 600)})


class AgentType(str, Enum):
    """Which agent a chat message is addressed to."""

    RECEPTION = "reception"
    DATA = "data"
    ROUTINE = "routine"


# Credential audiences, one per deployed agent
RECEPTION_AUDIENCE = "reception-agent"
DATA_AUDIENCE = "data-agent"
ROUTINE_AUDIENCE = "routine-agent"


@dataclass(frozen=True)
class HistoryEntry:
    role: Literal["user", "assistant", "system"]
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AgentRequest:
    """Body of a chat call to the reception or data agent."""

    user_id: str
    text: str
    user_display_name: str
    history: tuple[HistoryEntry, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user": self.user_id,
            "text": self.text,
            "name": self.user_display_name,
        }
        if self.history:
            payload["history"] = [entry.to_payload() for entry in self.history]
        return payload


@dataclass(frozen=True)
class NormalizedAgentResponse:
    """Uniform view of an agent reply.

    Attributes:
        text: Reply text, never empty
        structured_data: Non-empty key/value object the agent attached, or None
        text_synthesized: True when text is a canned fallback or a generated
            confirmation rather than the agent's own ``response`` field
    """

    text: str
    structured_data: dict[str, Any] | None = None
    text_synthesized: bool = False

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("NormalizedAgentResponse.text must not be empty")
        if not isinstance(self.structured_data, dict) or not self.structured_data:
            object.__setattr__(self, "structured_data", None)

    @property
    def has_structured_data(self) -> bool:
        return self.structured_data is not None

    @property
    def ready_to_chain(self) -> bool:
        """Agent answered with its own text and a usable structured payload."""
        return self.has_structured_data and not self.text_synthesized


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and retry budget for one agent call.

    ``timeout_ms=None`` disables the per-attempt timer; the transport's own
    ceiling still applies.
    """

    timeout_ms: int | None
    max_attempts: int = 1
    base_delay_ms: int = 0
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUSES

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive or None, got {self.timeout_ms}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")

    @property
    def timeout_seconds(self) -> float | None:
        return None if self.timeout_ms is None else self.timeout_ms / 1000

    def backoff_seconds(self, attempt: int) -> float:
        """Linear backoff: ``base_delay_ms * attempt``."""
        return self.base_delay_ms * attempt / 1000

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_statuses

    @classmethod
    def single_shot(cls) -> RetryPolicy:
        """One attempt, no timer. Used for long-form routine generation."""
        return cls(timeout_ms=None, max_attempts=1, base_delay_ms=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            timeout_ms=settings.agent_request_timeout_ms,
            max_attempts=settings.agent_request_max_retries,
            base_delay_ms=settings.agent_retry_delay_ms,
        )


@dataclass(frozen=True)
class AgentEndpoints:
    reception: str
    data: str
    recommend_exercises: str

    def for_agent(self, agent_type: AgentType) -> str:
        """Endpoint of the first hop for ``agent_type``. Routine chains start at the data agent."""
        if agent_type is AgentType.RECEPTION:
            return self.reception
        return self.data

    @classmethod
    def from_settings(cls, settings: Settings) -> AgentEndpoints:
        return cls(
            reception=settings.reception_agent_webhook_url,
            data=settings.data_agent_webhook_url,
            recommend_exercises=settings.recommend_exercises_webhook_url,
        )


@dataclass(frozen=True)
class PersistenceOutcome:
    """What happened to the conversation write of one turn."""

    conversation_id: str | None = None
    skipped: bool = False
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.skipped and not self.errors and self.conversation_id is not None
