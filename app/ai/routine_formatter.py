"""Render routine documents as chat markdown."""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger
from pydantic import ValidationError

from app.ai.normalizer import is_json_content_type, pretty_json
from app.ai.routine_schemas import Exercise, Routine, RoutineEnvelope, Session, has_routine_key

EMPTY_ROUTINE_TEXT = "The routine agent did not return a routine."

_WORD_START_RE = re.compile(r"\b\w")


def _title_case_label(label: str) -> str:
    """``week_1`` -> ``Week 1``."""
    return _WORD_START_RE.sub(lambda match: match.group(0).upper(), label.replace("_", " "))


def _render_exercise(index: int, exercise: Exercise) -> list[str]:
    lines = [f"{index}. **{exercise.name or 'Exercise'}**"]
    if exercise.sets not in (None, ""):
        lines.append(f"   - Sets: {exercise.sets}")
    if exercise.reps not in (None, ""):
        lines.append(f"   - Reps: {exercise.reps}")
    if exercise.rest not in (None, ""):
        lines.append(f"   - Rest: {exercise.rest}")
    if exercise.notes:
        lines.append(f"   - Notes: {exercise.notes}")
    lines.append("")
    return lines


def _render_session(index: int, session: Session) -> list[str]:
    lines = [f"### Session {index}: {session.day or 'Day not specified'}"]
    if session.start_time and session.end_time:
        lines.append(f"**Schedule:** {session.start_time} - {session.end_time}")
    if session.focus:
        lines.append(f"**Focus:** {session.focus}")
    lines.append("")
    lines.append("**Exercises:**")
    for exercise_index, exercise in enumerate(session.exercises, start=1):
        lines.extend(_render_exercise(exercise_index, exercise))
    lines.append("")
    return lines


def render_routine(routine: Routine) -> str:
    lines = ["# Personalized Routine", ""]

    if routine.objective:
        lines.extend([f"**Objective:** {routine.objective}", ""])
    if routine.description:
        lines.extend([routine.description, ""])
    if routine.program_duration not in (None, ""):
        lines.extend([f"**Program duration:** {routine.program_duration}", ""])

    if routine.sessions:
        lines.extend(["## Training Sessions", ""])
        for index, session in enumerate(routine.sessions, start=1):
            lines.extend(_render_session(index, session))

    if routine.general_advice:
        lines.extend(["## General Advice", ""])
        lines.extend(f"- {advice}" for advice in routine.general_advice)
        lines.append("")

    if routine.progression:
        lines.extend(["## Weekly Progression", ""])
        for label, description in routine.progression.items():
            lines.extend([f"**{_title_case_label(label)}:** {description}", ""])

    return "\n".join(lines)


def format_routine(document: Any) -> str:
    """Format a routine document as markdown.

    Args:
        document: Decoded agent payload, expected ``{"routine": {...}}``

    Returns:
        Markdown text. Payloads without a routine, or whose routine does not
        validate, come back as an indented JSON dump of the input.
    """
    if not has_routine_key(document):
        logger.warning("[ROUTINE_FORMATTER] Payload has no routine, returning raw dump")
        return pretty_json(document if document is not None else {})

    try:
        envelope = RoutineEnvelope.model_validate(document)
    except ValidationError as e:
        logger.warning(f"[ROUTINE_FORMATTER] Routine failed validation, returning raw dump: {e.error_count()} error(s)")
        return pretty_json(document)

    return render_routine(envelope.routine)


def extract_routine_reply(content_type: str | None, body: str) -> str:
    """Turn the routine agent's HTTP body into the assistant reply.

    An object with a routine, or an array whose first element has one, is
    formatted. Other JSON is returned indented; non-JSON bodies verbatim.
    """
    if not body or not body.strip():
        return EMPTY_ROUTINE_TEXT

    if not is_json_content_type(content_type):
        return body

    try:
        parsed = json.loads(body)
    except ValueError:
        logger.warning("[ROUTINE_FORMATTER] Routine agent body is not valid JSON, returning it verbatim")
        return body

    if isinstance(parsed, list) and parsed and has_routine_key(parsed[0]):
        return format_routine(parsed[0])
    if has_routine_key(parsed):
        return format_routine(parsed)
    return pretty_json(parsed)
