"""Build the process-wide AgentOrchestrator from settings."""

from __future__ import annotations

from loguru import logger

from app.ai.credentials import build_minter
from app.ai.orchestrator import AgentOrchestrator
from app.ai.types import AgentEndpoints, RetryPolicy
from app.ai.webhook_client import AgentWebhookClient
from app.config.settings import Settings, settings
from app.db.conversation_repository import SqlConversationStore, SqlProfileDirectory

_orchestrator: AgentOrchestrator | None = None


def build_orchestrator(config: Settings) -> AgentOrchestrator:
    endpoints = AgentEndpoints.from_settings(config)
    retry_policy = RetryPolicy.from_settings(config)
    logger.info(
        "[AGENT_ORCHESTRATOR] Configured agent endpoints",
        reception=endpoints.reception,
        data=endpoints.data,
        recommend_exercises=endpoints.recommend_exercises,
        timeout_ms=retry_policy.timeout_ms,
        max_attempts=retry_policy.max_attempts,
    )
    return AgentOrchestrator(
        endpoints=endpoints,
        minter=build_minter(config),
        webhook_client=AgentWebhookClient(transport_timeout_seconds=config.agent_transport_timeout_seconds),
        retry_policy=retry_policy,
        chain_policy=RetryPolicy.single_shot(),
        store=SqlConversationStore(),
        profiles=SqlProfileDirectory(),
    )


def get_orchestrator() -> AgentOrchestrator:
    """Get or create the shared orchestrator (lazy, so the key is read on first use)."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(settings)
    return _orchestrator


async def close_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.aclose()
        _orchestrator = None
