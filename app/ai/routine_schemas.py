"""Routine document produced by the routine-generation agent.

The agent emits Catalan field names (``objectiu``, ``exercicis``...); English
names are accepted too. Scalars such as sets and reps arrive as numbers or
strings depending on the model run, so they are kept as either.

Model output drifts in shape as well: a ``focus`` may come back as a list of
muscle groups, a progression step as an object. Leaf fields accept any JSON value
and flatten lists and objects to text.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Scalar = str | int | float

_MODEL_CONFIG = ConfigDict(populate_by_name=True, extra="ignore")


def _as_text(value: Any) -> str | None:
    """Flatten a JSON value to display text. ``["Legs", "Core"]`` -> ``Legs, Core``."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ", ".join(text for text in (_as_text(item) for item in value) if text)
    if isinstance(value, dict):
        return ", ".join(f"{key}: {_as_text(item)}" for key, item in value.items() if item is not None)
    return str(value)


def _as_scalar(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return _as_text(value)
    return value


def _list_or_empty(value: Any) -> Any:
    return value if isinstance(value, list) else []


class Exercise(BaseModel):
    model_config = _MODEL_CONFIG

    name: str | None = Field(default=None, validation_alias=AliasChoices("nom", "name"))
    sets: Scalar | None = Field(default=None, validation_alias=AliasChoices("series", "sets"))
    reps: Scalar | None = Field(default=None, validation_alias=AliasChoices("repeticions", "reps"))
    rest: Scalar | None = Field(default=None, validation_alias=AliasChoices("descanso", "descans", "rest"))
    notes: str | None = Field(default=None, validation_alias=AliasChoices("notes", "notas"))

    @field_validator("name", "notes", mode="before")
    @classmethod
    def validate_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("sets", "reps", "rest", mode="before")
    @classmethod
    def validate_scalars(cls, value: Any) -> Any:
        return _as_scalar(value)


class Session(BaseModel):
    model_config = _MODEL_CONFIG

    day: str | None = Field(default=None, validation_alias=AliasChoices("dia", "day"))
    start_time: str | None = Field(default=None, validation_alias=AliasChoices("horaInici", "start_time"))
    end_time: str | None = Field(default=None, validation_alias=AliasChoices("horaFi", "end_time"))
    focus: str | None = None
    exercises: list[Exercise] = Field(default_factory=list, validation_alias=AliasChoices("exercicis", "exercises"))

    @field_validator("day", "start_time", "end_time", "focus", mode="before")
    @classmethod
    def validate_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("exercises", mode="before")
    @classmethod
    def validate_exercises(cls, value: Any) -> Any:
        # A bare string is an exercise given by name only
        return [
            {"name": item} if isinstance(item, str) else item
            for item in _list_or_empty(value)
            if isinstance(item, (str, dict))
        ]


class Routine(BaseModel):
    model_config = _MODEL_CONFIG

    objective: str | None = Field(default=None, validation_alias=AliasChoices("objectiu", "objective"))
    description: str | None = Field(default=None, validation_alias=AliasChoices("descripcio", "description"))
    program_duration: Scalar | None = Field(
        default=None, validation_alias=AliasChoices("durada_programa", "program_duration")
    )
    sessions: list[Session] = Field(default_factory=list)
    general_advice: list[Scalar] = Field(
        default_factory=list, validation_alias=AliasChoices("consells_generals", "general_advice")
    )
    progression: dict[str, Scalar] = Field(default_factory=dict, validation_alias=AliasChoices("progressio", "progression"))

    @field_validator("objective", "description", mode="before")
    @classmethod
    def validate_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("program_duration", mode="before")
    @classmethod
    def validate_duration(cls, value: Any) -> Any:
        return _as_scalar(value)

    @field_validator("sessions", mode="before")
    @classmethod
    def validate_sessions(cls, value: Any) -> Any:
        """Agents sometimes send ``null`` or a string where a list belongs; treat it as absent."""
        return [item for item in _list_or_empty(value) if isinstance(item, dict)]

    @field_validator("general_advice", mode="before")
    @classmethod
    def validate_advice(cls, value: Any) -> Any:
        return [_as_scalar(item) for item in _list_or_empty(value) if item is not None]

    @field_validator("progression", mode="before")
    @classmethod
    def validate_progression(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return {str(label): _as_scalar(step) for label, step in value.items() if step is not None}


class RoutineEnvelope(BaseModel):
    """Top-level agent payload: ``{"routine": {...}}`` (or ``{"rutina": {...}}``)."""

    model_config = _MODEL_CONFIG

    routine: Routine = Field(validation_alias=AliasChoices("routine", "rutina"))


ROUTINE_KEYS = ("routine", "rutina")


def has_routine_key(payload: object) -> bool:
    return isinstance(payload, dict) and any(payload.get(key) for key in ROUTINE_KEYS)
