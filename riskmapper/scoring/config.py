"""Scoring configuration attached to each question.

Stored as JSON on ``question_definitions.scoring_config`` and discriminated by
its ``type`` field:

    {"type": "radio", "opts": ["Yes", "No"], "p_scores": [2, 8], "i_scores": [3, 9]}
    {"type": "text", "threshold": 10, "p_short": 2, "p_long": 6, "i_short": 2, "i_long": 8}

Configs are validated once when parsed; scoring itself never raises.
"""

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from riskmapper.core.exceptions import ScoringConfigError

MIN_SCORE = 1
MAX_SCORE = 10


def clamp(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def _check_range(name: str, value: int) -> None:
    if not MIN_SCORE <= value <= MAX_SCORE:
        raise ValueError(f"{name}={value} out of range [{MIN_SCORE},{MAX_SCORE}]")


class RadioConfig(BaseModel):
    """Radio/select question: opts[i] scores (p_scores[i], i_scores[i])."""

    model_config = ConfigDict(frozen=True)

    type: Literal["radio"] = "radio"
    opts: list[str]
    p_scores: list[int]
    i_scores: list[int]

    @model_validator(mode="after")
    def _validate(self) -> "RadioConfig":
        n = len(self.opts)
        if n == 0:
            raise ValueError("radio config: opts must not be empty")
        if len(self.p_scores) != n:
            raise ValueError(f"radio config: p_scores length {len(self.p_scores)} != opts length {n}")
        if len(self.i_scores) != n:
            raise ValueError(f"radio config: i_scores length {len(self.i_scores)} != opts length {n}")
        for idx, score in enumerate(self.p_scores):
            _check_range(f"radio config: p_scores[{idx}]", score)
        for idx, score in enumerate(self.i_scores):
            _check_range(f"radio config: i_scores[{idx}]", score)
        return self

    def score(self, answer: str) -> tuple[int, int]:
        try:
            idx = self.opts.index(answer)
        except ValueError:
            # Skipped, empty or stale answers score the floor
            return MIN_SCORE, MIN_SCORE
        return clamp(self.p_scores[idx]), clamp(self.i_scores[idx])


class TextConfig(BaseModel):
    """Free-text question: scored on whether the trimmed length exceeds ``threshold``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    threshold: int
    p_short: int
    p_long: int
    i_short: int
    i_long: int

    @model_validator(mode="after")
    def _validate(self) -> "TextConfig":
        for name in ("p_short", "p_long", "i_short", "i_long"):
            _check_range(f"text config: {name}", getattr(self, name))
        if self.threshold < 0:
            raise ValueError(f"text config: threshold must be >= 0, got {self.threshold}")
        return self

    def score(self, answer: str) -> tuple[int, int]:
        # Threshold counts UTF-8 bytes, not characters
        if len(answer.encode("utf-8")) > self.threshold:
            return clamp(self.p_long), clamp(self.i_long)
        return clamp(self.p_short), clamp(self.i_short)


ScoringConfig = Annotated[RadioConfig | TextConfig, Field(discriminator="type")]

_adapter: TypeAdapter[RadioConfig | TextConfig] = TypeAdapter(ScoringConfig)


def parse_scoring_config(raw: Any) -> RadioConfig | TextConfig:
    """Parse and validate a scoring config from a JSON column value or JSON text.

    Raises:
        ScoringConfigError: empty, malformed, unknown type, or failed validation.
    """
    if raw is None or raw == "" or raw == b"":
        raise ScoringConfigError("scoring config: empty JSON")

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ScoringConfigError(f"scoring config: malformed JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ScoringConfigError(f"scoring config: expected object, got {type(raw).__name__}")

    try:
        return _adapter.validate_python(raw)
    except ValidationError as exc:
        raise ScoringConfigError(f"scoring config: {_first_error(exc)}") from exc


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    err = errors[0]
    if err["type"] == "union_tag_invalid":
        return f"unknown type {err.get('ctx', {}).get('tag')!r}"
    if err["type"] == "union_tag_not_found":
        return "missing type field"
    loc = ".".join(str(part) for part in err["loc"][1:])
    msg = err["msg"].removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg
