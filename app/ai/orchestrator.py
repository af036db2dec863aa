"""Agent orchestration for one chat turn.

A turn addressed to the reception or data agent is a single hop. A routine
turn is a two-hop chain: the data agent gathers the user's parameters, and
once it reports structured data the routine-generation agent turns that
data into a program. Conversation writes happen after the reply is known
and never fail the turn.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from app.ai.credentials import CredentialMinter, SignedCredential
from app.ai.errors import AgentServiceError, ConversationNotFoundError, CredentialError
from app.ai.normalizer import normalize_response
from app.ai.protocols import ConversationStore, ProfileDirectory
from app.ai.routine_formatter import extract_routine_reply
from app.ai.types import (
    DATA_AUDIENCE,
    RECEPTION_AUDIENCE,
    ROUTINE_AUDIENCE,
    AgentEndpoints,
    AgentRequest,
    AgentType,
    HistoryEntry,
    NormalizedAgentResponse,
    PersistenceOutcome,
    RetryPolicy,
)
from app.ai.webhook_client import AgentWebhookClient

DEFAULT_DISPLAY_NAME = "User"
DEFAULT_CONVERSATION_TITLE = "New Chat"


class TurnState(str, Enum):
    IDLE = "idle"
    FETCHING_PROFILE = "fetching_profile"
    REQUESTING = "requesting"
    NORMALIZING = "normalizing"
    CHAINING = "chaining"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class AgentExchange:
    """Result of one user turn."""

    text: str
    agent_type: AgentType
    conversation_id: str | None
    chained: bool
    persistence: PersistenceOutcome
    states: tuple[TurnState, ...]


@dataclass
class _TurnTrail:
    user_id: str
    agent_type: AgentType
    states: list[TurnState] = field(default_factory=lambda: [TurnState.IDLE])

    def enter(self, state: TurnState) -> None:
        logger.debug(
            f"[AGENT_ORCHESTRATOR] {self.states[-1].value} -> {state.value}",
            user_id=self.user_id,
            agent_type=self.agent_type.value,
        )
        self.states.append(state)


class AgentOrchestrator:
    """Relay chat turns to the agents and record them in the conversation store."""

    def __init__(
        self,
        endpoints: AgentEndpoints,
        minter: CredentialMinter,
        webhook_client: AgentWebhookClient,
        retry_policy: RetryPolicy,
        chain_policy: RetryPolicy | None = None,
        store: ConversationStore | None = None,
        profiles: ProfileDirectory | None = None,
    ) -> None:
        self._endpoints = endpoints
        self._minter = minter
        self._client = webhook_client
        self._retry_policy = retry_policy
        self._chain_policy = chain_policy or RetryPolicy.single_shot()
        self._store = store
        self._profiles = profiles

    async def send_message(
        self,
        user_id: str,
        text: str,
        conversation_id: str | None = None,
        agent_type: AgentType | str = AgentType.RECEPTION,
    ) -> str:
        """Send ``text`` to an agent and return the reply text.

        Raises:
            ConversationNotFoundError: ``conversation_id`` is not one of the user's
            AgentServiceError: The agent could not be reached or answered incorrectly
            CredentialError: The agent credential could not be signed
        """
        result = await self.exchange(user_id, text, conversation_id=conversation_id, agent_type=agent_type)
        return result.text

    async def exchange(
        self,
        user_id: str,
        text: str,
        conversation_id: str | None = None,
        agent_type: AgentType | str = AgentType.RECEPTION,
    ) -> AgentExchange:
        """Run one turn and return the reply with its persistence outcome."""
        agent_type = AgentType(agent_type)
        trail = _TurnTrail(user_id=user_id, agent_type=agent_type)

        logger.info(
            f"[AGENT_ORCHESTRATOR] Sending message to {agent_type.value} agent",
            user_id=user_id,
            agent_type=agent_type.value,
            conversation_id=conversation_id,
            message_length=len(text),
        )

        ownership_error: str | None = None
        try:
            trail.enter(TurnState.FETCHING_PROFILE)
            ownership_error = await self._check_conversation(user_id, conversation_id)
            display_name = await self._display_name(user_id)

            if agent_type is AgentType.ROUTINE:
                reply, chained = await self._run_routine_chain(user_id, text, display_name, trail)
            else:
                history = await self._history(conversation_id if ownership_error is None else None)
                reply = await self._run_single_hop(user_id, text, display_name, history, agent_type, trail)
                chained = False
        except (AgentServiceError, CredentialError, ConversationNotFoundError) as e:
            trail.enter(TurnState.FAILED)
            logger.error(
                "[AGENT_ORCHESTRATOR] Turn failed",
                error=str(e),
                user_id=user_id,
                agent_type=agent_type.value,
                error_code=e.code,
            )
            raise

        trail.enter(TurnState.PERSISTING)
        if ownership_error is not None:
            # Never write into a conversation whose owner could not be confirmed
            persistence = PersistenceOutcome(errors=(ownership_error,))
        else:
            persistence = await self._persist_turn(user_id, conversation_id, text, reply)
        trail.enter(TurnState.DONE)

        logger.info(
            f"[AGENT_ORCHESTRATOR] Turn completed for {agent_type.value} agent",
            user_id=user_id,
            conversation_id=persistence.conversation_id,
            chained=chained,
            persisted=persistence.ok,
        )
        return AgentExchange(
            text=reply,
            agent_type=agent_type,
            conversation_id=persistence.conversation_id,
            chained=chained,
            persistence=persistence,
            states=tuple(trail.states),
        )

    async def _check_conversation(self, user_id: str, conversation_id: str | None) -> str | None:
        """Confirm ``user_id`` owns ``conversation_id`` before it is read or written.

        Returns None when the turn may use the conversation, or an error string
        when ownership could not be checked. Raises ConversationNotFoundError when
        the conversation is unknown or belongs to someone else.
        """
        if not conversation_id or self._store is None:
            return None
        try:
            owned = await self._store.owns_conversation(user_id, conversation_id)
        except Exception as e:
            logger.exception(
                "[AGENT_ORCHESTRATOR] Could not verify conversation owner, turn will not touch it",
                error=str(e),
                user_id=user_id,
                conversation_id=conversation_id,
            )
            return f"owns_conversation: {type(e).__name__}"
        if not owned:
            logger.warning(
                "[AGENT_ORCHESTRATOR] Conversation not found for user",
                user_id=user_id,
                conversation_id=conversation_id,
            )
            raise ConversationNotFoundError(conversation_id)
        return None

    async def _display_name(self, user_id: str) -> str:
        if self._profiles is None:
            return DEFAULT_DISPLAY_NAME
        try:
            name = await self._profiles.get_display_name(user_id)
        except Exception as e:
            logger.exception("[AGENT_ORCHESTRATOR] Profile lookup failed, using default name", error=str(e), user_id=user_id)
            return DEFAULT_DISPLAY_NAME
        return name or DEFAULT_DISPLAY_NAME

    async def _history(self, conversation_id: str | None) -> tuple[HistoryEntry, ...]:
        if not conversation_id or self._store is None:
            return ()
        try:
            entries = await self._store.get_history(conversation_id)
        except Exception as e:
            logger.exception(
                "[AGENT_ORCHESTRATOR] Could not load history, sending without it",
                error=str(e),
                conversation_id=conversation_id,
            )
            return ()
        return tuple(entries)

    def _credential_factory(self, user_id: str, audience: str):
        def mint() -> SignedCredential:
            return self._minter.mint(user_id, audience)

        return mint

    async def _call_agent(
        self,
        agent_type: AgentType,
        request: AgentRequest,
        policy: RetryPolicy,
        trail: _TurnTrail,
    ) -> NormalizedAgentResponse:
        audience = RECEPTION_AUDIENCE if agent_type is AgentType.RECEPTION else DATA_AUDIENCE
        trail.enter(TurnState.REQUESTING)
        response = await self._client.invoke(
            self._endpoints.for_agent(agent_type),
            request.to_payload(),
            self._credential_factory(request.user_id, audience),
            policy,
            agent_type.value,
        )
        trail.enter(TurnState.NORMALIZING)
        # Routine turns start at the data agent, name the hop after it
        hop_name = AgentType.DATA.value if agent_type is AgentType.ROUTINE else agent_type.value
        return normalize_response(response, hop_name)

    async def _run_single_hop(
        self,
        user_id: str,
        text: str,
        display_name: str,
        history: tuple[HistoryEntry, ...],
        agent_type: AgentType,
        trail: _TurnTrail,
    ) -> str:
        request = AgentRequest(user_id=user_id, text=text, user_display_name=display_name, history=history)
        normalized = await self._call_agent(agent_type, request, self._retry_policy, trail)
        return normalized.text

    async def _run_routine_chain(
        self,
        user_id: str,
        text: str,
        display_name: str,
        trail: _TurnTrail,
    ) -> tuple[str, bool]:
        request = AgentRequest(user_id=user_id, text=text, user_display_name=display_name)
        normalized = await self._call_agent(AgentType.ROUTINE, request, self._chain_policy, trail)

        if not normalized.ready_to_chain:
            logger.info(
                "[AGENT_ORCHESTRATOR] Data agent is still gathering information, routine chain not started",
                user_id=user_id,
                has_structured_data=normalized.has_structured_data,
            )
            return normalized.text, False

        logger.info(
            "[AGENT_ORCHESTRATOR] Data agent returned structured data, requesting routine",
            user_id=user_id,
            keys=list(normalized.structured_data.keys()),
        )
        trail.enter(TurnState.CHAINING)
        trail.enter(TurnState.REQUESTING)
        response = await self._client.invoke(
            self._endpoints.recommend_exercises,
            normalized.structured_data,
            self._credential_factory(user_id, ROUTINE_AUDIENCE),
            self._chain_policy,
            AgentType.ROUTINE.value,
        )
        trail.enter(TurnState.NORMALIZING)
        reply = extract_routine_reply(response.headers.get("content-type"), response.text or "")
        return reply, True

    async def _resolve_conversation(self, store: ConversationStore, user_id: str, conversation_id: str | None) -> str:
        if conversation_id:
            return conversation_id
        # Not atomic: two concurrent first messages can each create a conversation
        latest = await store.find_latest_conversation(user_id)
        if latest:
            return latest
        created = await store.create_conversation(user_id, DEFAULT_CONVERSATION_TITLE)
        logger.info("[AGENT_ORCHESTRATOR] Created conversation", user_id=user_id, conversation_id=created)
        return created

    async def _persist_turn(
        self,
        user_id: str,
        conversation_id: str | None,
        user_text: str,
        reply: str,
    ) -> PersistenceOutcome:
        """Record the user message and the reply. Failures are logged, never raised."""
        store = self._store
        if store is None:
            logger.warning("[AGENT_ORCHESTRATOR] No conversation store configured, turn not persisted", user_id=user_id)
            return PersistenceOutcome(conversation_id=conversation_id, skipped=True)

        errors: list[str] = []
        try:
            resolved_id = await self._resolve_conversation(store, user_id, conversation_id)
        except Exception as e:
            logger.exception("[AGENT_ORCHESTRATOR] Could not resolve conversation", error=str(e), user_id=user_id)
            return PersistenceOutcome(conversation_id=conversation_id, errors=(f"resolve_conversation: {e}",))

        for role, content in (("user", user_text), ("assistant", reply)):
            try:
                await store.append_message(resolved_id, role, content)
            except Exception as e:
                logger.exception(
                    f"[AGENT_ORCHESTRATOR] Could not save {role} message",
                    error=str(e),
                    user_id=user_id,
                    conversation_id=resolved_id,
                )
                errors.append(f"append_{role}_message: {e}")

        try:
            await store.touch_conversation(resolved_id)
        except Exception as e:
            logger.exception("[AGENT_ORCHESTRATOR] Could not update conversation timestamp", error=str(e), conversation_id=resolved_id)
            errors.append(f"touch_conversation: {e}")

        return PersistenceOutcome(conversation_id=resolved_id, errors=tuple(errors))

    async def aclose(self) -> None:
        await self._client.aclose()
