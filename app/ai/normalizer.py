"""Normalize agent replies into NormalizedAgentResponse.

Agents answer the same question in several encodings: a JSON object, a JSON
object whose ``datos`` field is itself a JSON string, ``datos`` as ad hoc
``key: value`` lines, or plain text. Everything downstream of this module
only sees NormalizedAgentResponse.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
from loguru import logger

from app.ai.errors import ResponseParseError
from app.ai.types import NormalizedAgentResponse

PARSE_FAILURE_TEXT = "Could not process agent response. Please try again."
CONFIRMATION_PREFIX = "Great! I have all the information I need. Here is what I found: "

_NUMBER_RE = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")


def no_response_text(agent_type: str) -> str:
    return f"Sorry, I didn't get a response from the {agent_type} agent."


def pretty_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def is_json_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _coerce_value(raw_value: str) -> Any:
    if raw_value.startswith(("[", "{")):
        try:
            return json.loads(raw_value)
        except ValueError:
            return raw_value
    if raw_value in ("true", "false"):
        return raw_value == "true"
    if _NUMBER_RE.match(raw_value):
        if re.fullmatch(r"[-+]?\d+", raw_value):
            return int(raw_value)
        return float(raw_value)
    return raw_value


def parse_key_value_text(text: str) -> dict[str, Any]:
    """Parse ``key: value`` lines into a dict.

    Splits each non-blank line on its first colon. Values that start with ``[``
    or ``{`` are JSON-decoded when valid, ``true``/``false`` become booleans,
    plain decimal literals become numbers, anything else stays a trimmed
    string. Lines without a colon or with an empty key are skipped.

    Never raises; malformed input yields a partial (possibly empty) dict.
    """
    result: dict[str, Any] = {}
    if not isinstance(text, str):
        return result

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        key, sep, raw_value = stripped.partition(":")
        if not sep:
            continue
        key = key.strip()
        if not key:
            continue
        result[key] = _coerce_value(raw_value.strip())

    return result


def _decode_json_body(body: str) -> Any:
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except ValueError as e:
        raise ResponseParseError(f"Agent body is not valid JSON: {e}") from e


def coerce_structured_data(candidate: Any) -> dict[str, Any] | None:
    """Turn a ``datos``/``data`` candidate into a non-empty dict or None.

    String candidates are tried as JSON first, then as ``key: value`` text.
    """
    if isinstance(candidate, str):
        try:
            decoded = json.loads(candidate)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            candidate = decoded
        else:
            candidate = parse_key_value_text(candidate)
            if candidate:
                logger.debug("[AGENT_NORMALIZER] Structured data parsed from key/value text", keys=list(candidate.keys()))

    if isinstance(candidate, dict) and candidate:
        return candidate
    return None


def _pick_candidate(parsed: dict[str, Any]) -> Any:
    """``datos`` wins over ``data`` when both are present."""
    datos = parsed.get("datos")
    if datos:
        return datos
    return parsed.get("data")


def normalize_payload(content_type: str | None, body: str, agent_type: str) -> NormalizedAgentResponse:
    """Normalize a raw agent body.

    Args:
        content_type: Value of the Content-Type header, if any
        body: Response body as text
        agent_type: Agent name, used in the canned fallback text

    Returns:
        NormalizedAgentResponse whose text is always populated
    """
    if not is_json_content_type(content_type):
        if body:
            return NormalizedAgentResponse(text=body)
        return NormalizedAgentResponse(text=no_response_text(agent_type), text_synthesized=True)

    try:
        parsed = _decode_json_body(body)
    except ResponseParseError as e:
        logger.error(f"[AGENT_NORMALIZER] Failed to parse JSON response from {agent_type} agent", error=str(e), body_preview=body[:200])
        return NormalizedAgentResponse(text=PARSE_FAILURE_TEXT, text_synthesized=True)

    if isinstance(parsed, str):
        parsed = {"response": parsed}
    elif not isinstance(parsed, dict):
        logger.warning(
            f"[AGENT_NORMALIZER] {agent_type} agent returned a JSON {type(parsed).__name__}, expected an object",
            agent_type=agent_type,
        )
        parsed = {}

    response_field = parsed.get("response")
    text = response_field if isinstance(response_field, str) else ""

    structured_data = coerce_structured_data(_pick_candidate(parsed))
    if structured_data is not None:
        logger.info(
            f"[AGENT_NORMALIZER] Received structured data from {agent_type} agent",
            agent_type=agent_type,
            keys=list(structured_data.keys()),
        )

    if text:
        return NormalizedAgentResponse(text=text, structured_data=structured_data)
    if structured_data is not None:
        return NormalizedAgentResponse(
            text=CONFIRMATION_PREFIX + pretty_json(structured_data),
            structured_data=structured_data,
            text_synthesized=True,
        )
    return NormalizedAgentResponse(text=no_response_text(agent_type), text_synthesized=True)


def normalize_response(response: httpx.Response, agent_type: str) -> NormalizedAgentResponse:
    """Normalize an HTTP response from an agent webhook."""
    return normalize_payload(response.headers.get("content-type"), response.text or "", agent_type)
