"""HTTP client for agent webhooks.

One POST per attempt, each attempt under its own timer and its own freshly
minted credential. Retries are an explicit bounded loop with linear backoff.
"""

from __future__ import annotations

import asyncio
import errno
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger

from app.ai.credentials import SignedCredential
from app.ai.errors import (
    AgentConnectionRefusedError,
    AgentEndpointNotRegisteredError,
    AgentNetworkError,
    AgentServiceUnavailableError,
    AgentTimeoutError,
    AgentUpstreamHTTPError,
)
from app.ai.types import RetryPolicy

BODY_EXCERPT_CHARS = 200
_HTML_SIGNATURES = ("<html", "<!doctype html", "ngrok")

CredentialFactory = Callable[[], SignedCredential]
Sleep = Callable[[float], Awaitable[Any]]


def looks_like_html_error(body: str) -> bool:
    """Tunnel/proxy failure pages are HTML, agents never answer with HTML."""
    lowered = body.lower()
    return any(signature in lowered for signature in _HTML_SIGNATURES)


def is_unregistered_webhook(status_code: int, body: str) -> bool:
    """404 whose body says the webhook workflow is not registered."""
    if status_code != 404 or not body:
        return False
    try:
        parsed = json.loads(body)
    except ValueError:
        return "not registered" in body.lower()
    message = parsed.get("message") if isinstance(parsed, dict) else None
    return isinstance(message, str) and "not registered" in message.lower()


def _is_connection_refused(exc: httpx.ConnectError) -> bool:
    cause: BaseException | None = exc
    while cause is not None:
        if isinstance(cause, ConnectionRefusedError):
            return True
        if isinstance(cause, OSError) and cause.errno == errno.ECONNREFUSED:
            return True
        cause = cause.__cause__ or cause.__context__
    return "refused" in str(exc).lower()


class AgentWebhookClient:
    """Thin agent webhook client.

    - One credential per attempt
    - Bounded retries, linear backoff
    - Failures classified into AgentServiceError subclasses
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        transport_timeout_seconds: float | None = 300.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._transport_timeout = transport_timeout_seconds
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client, recreating it if it was closed."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._transport_timeout))
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _post(self, endpoint: str, payload: Any, credential: SignedCredential, policy: RetryPolicy) -> httpx.Response:
        request = self._get_client().post(
            endpoint,
            json=payload,
            headers={
                "Authorization": credential.authorization_header,
                "Content-Type": "application/json",
            },
        )
        if policy.timeout_seconds is None:
            return await request
        return await asyncio.wait_for(request, timeout=policy.timeout_seconds)

    async def invoke(
        self,
        endpoint: str,
        payload: Any,
        mint_credential: CredentialFactory,
        policy: RetryPolicy,
        agent_type: str,
    ) -> httpx.Response:
        """POST ``payload`` to an agent webhook under ``policy``.

        Args:
            endpoint: Webhook URL
            payload: JSON-serializable request body
            mint_credential: Called before every attempt for a fresh credential
            policy: Timeout and retry budget
            agent_type: Agent name, used in logs and error messages

        Returns:
            The 2xx response, body not yet interpreted

        Raises:
            AgentServiceError: Classified failure once no attempt is left
            CredentialError: Signing failed (never retried)
        """
        started = time.monotonic()

        for attempt in range(1, policy.max_attempts + 1):
            attempts_left = attempt < policy.max_attempts
            credential = mint_credential()

            logger.debug(
                f"[AGENT_WEBHOOK] POST {agent_type} agent (attempt {attempt}/{policy.max_attempts})",
                agent_type=agent_type,
                endpoint=endpoint,
                attempt=attempt,
                timeout_ms=policy.timeout_ms,
            )

            attempt_started = time.monotonic()
            try:
                response = await self._post(endpoint, payload, credential, policy)
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                if attempts_left:
                    await self._backoff(policy, attempt, agent_type, endpoint, reason="timeout")
                    continue
                elapsed_ms = int((time.monotonic() - started) * 1000)
                logger.error(
                    f"[AGENT_WEBHOOK] {agent_type} agent timed out after {policy.max_attempts} attempt(s)",
                    agent_type=agent_type,
                    endpoint=endpoint,
                    timeout_ms=policy.timeout_ms,
                    elapsed_ms=elapsed_ms,
                )
                raise AgentTimeoutError(
                    f"The {agent_type} agent did not answer in time ({round(elapsed_ms / 1000)} seconds). "
                    "The agent may be processing a complex request. Please try again.",
                    agent_type=agent_type,
                    elapsed_ms=elapsed_ms,
                    attempts=attempt,
                ) from e
            except httpx.ConnectError as e:
                if attempts_left:
                    await self._backoff(policy, attempt, agent_type, endpoint, reason=f"connect error: {e}")
                    continue
                logger.error(f"[AGENT_WEBHOOK] Cannot connect to {agent_type} agent", error=str(e), agent_type=agent_type, endpoint=endpoint)
                if _is_connection_refused(e):
                    raise AgentConnectionRefusedError(
                        f"Connection refused - the {agent_type} agent service may be down or unreachable.",
                        agent_type=agent_type,
                    ) from e
                raise AgentNetworkError(f"Failed to connect to the {agent_type} agent: {e}", agent_type=agent_type) from e
            except httpx.RequestError as e:
                if attempts_left:
                    await self._backoff(policy, attempt, agent_type, endpoint, reason=f"request error: {e}")
                    continue
                logger.error(f"[AGENT_WEBHOOK] Network error calling {agent_type} agent", error=str(e), agent_type=agent_type, endpoint=endpoint)
                raise AgentNetworkError(
                    f"Failed to connect to the {agent_type} agent: {e or type(e).__name__}",
                    agent_type=agent_type,
                ) from e

            duration_ms = int((time.monotonic() - attempt_started) * 1000)
            logger.debug(
                f"[AGENT_WEBHOOK] {agent_type} agent responded {response.status_code}",
                agent_type=agent_type,
                status_code=response.status_code,
                duration_ms=duration_ms,
                attempt=attempt,
            )

            if response.is_success:
                return response

            body = response.text or ""

            if looks_like_html_error(body):
                logger.error(
                    "[AGENT_WEBHOOK] Agent webhook returned an HTML error page (tunnel or proxy misconfiguration)",
                    agent_type=agent_type,
                    endpoint=endpoint,
                    status_code=response.status_code,
                )
                raise AgentServiceUnavailableError(
                    "Agent service is temporarily unavailable. Please check the webhook URL configuration.",
                    agent_type=agent_type,
                )

            if is_unregistered_webhook(response.status_code, body):
                logger.error("[AGENT_WEBHOOK] Agent webhook not registered or inactive", agent_type=agent_type, endpoint=endpoint)
                raise AgentEndpointNotRegisteredError(
                    f"The {agent_type} agent webhook is not registered or not active. "
                    "Please ensure the workflow is activated in the agent service.",
                    agent_type=agent_type,
                )

            if policy.is_retryable_status(response.status_code) and attempts_left:
                await self._backoff(policy, attempt, agent_type, endpoint, reason=f"status {response.status_code}")
                continue

            excerpt = body[:BODY_EXCERPT_CHARS]
            logger.error(
                f"[AGENT_WEBHOOK] {agent_type} agent returned HTTP {response.status_code}",
                agent_type=agent_type,
                endpoint=endpoint,
                status_code=response.status_code,
                body_excerpt=excerpt,
            )
            if response.status_code == 404:
                message = (
                    f"The {agent_type} agent webhook endpoint was not found (404). "
                    "Please verify the webhook URL is correct and the workflow is active."
                )
            else:
                message = f"The {agent_type} agent is unavailable: {response.status_code} {response.reason_phrase}".rstrip()
            raise AgentUpstreamHTTPError(message, agent_type=agent_type, status=response.status_code, body_excerpt=excerpt)

        # range(1, max_attempts + 1) always returns or raises on its last iteration
        raise AssertionError("unreachable: retry loop exited without a result")

    async def _backoff(self, policy: RetryPolicy, attempt: int, agent_type: str, endpoint: str, reason: str) -> None:
        wait_seconds = policy.backoff_seconds(attempt)
        logger.warning(
            f"[AGENT_WEBHOOK] {agent_type} agent failed. Retrying in {wait_seconds}s (attempt {attempt}/{policy.max_attempts})",
            agent_type=agent_type,
            reason=reason,
            endpoint=endpoint,
            attempt=attempt,
        )
        await self._sleep(wait_seconds)
