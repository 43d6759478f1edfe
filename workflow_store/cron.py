"""
Five-field cron expression value object.

Validation is structural only: each field is checked against its range, no
firing times are computed. A dispatcher that evaluates schedules belongs
outside the store.

Accepted field forms:
- ``*``
- ``*/N`` with N a positive integer (no upper bound)
- ``A-B`` with A <= B, both in range
- ``A,B,C`` plain integers, each in range
- a single integer in range
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import NamedTuple

from .errors import InvalidCronExpressionError


class CronField(NamedTuple):
    name: str
    minimum: int
    maximum: int


FIELDS: tuple[CronField, ...] = (
    CronField("minute", 0, 59),
    CronField("hour", 0, 23),
    CronField("day_of_month", 1, 31),
    CronField("month", 1, 12),
    CronField("day_of_week", 0, 6),
)

_EXPRESSION_RE = re.compile(r"(\S+)\s+(\S+)\s+(\S+)\s+(\S+)\s+(\S+)")
_NUMBER_RE = re.compile(r"[0-9]+")


def _number(text: str) -> int | None:
    if not _NUMBER_RE.fullmatch(text):
        return None
    return int(text)


def validate_field(part: str, minimum: int, maximum: int) -> bool:
    """Return True if ``part`` is a valid cron field for the inclusive range."""
    if part == "*":
        return True

    if part.startswith("*/"):
        step = _number(part[2:])
        return step is not None and step > 0

    # Ranges are checked before lists, so "1-3,5" is rejected.
    if "-" in part:
        bounds = part.split("-")
        if len(bounds) != 2:
            return False
        start, end = _number(bounds[0]), _number(bounds[1])
        if start is None or end is None:
            return False
        return minimum <= start <= maximum and minimum <= end <= maximum and start <= end

    if "," in part:
        for item in part.split(","):
            value = _number(item)
            if value is None or not minimum <= value <= maximum:
                return False
        return True

    value = _number(part)
    return value is not None and minimum <= value <= maximum


@dataclass(frozen=True)
class CronExpression:
    """``minute hour day-of-month month day-of-week``, validated on construction."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or self.value == "":
            raise InvalidCronExpressionError("cron expression cannot be empty")
        if not self.is_valid(self.value):
            raise InvalidCronExpressionError(f"invalid cron expression: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def is_valid(expression: str) -> bool:
        if not expression:
            return False
        match = _EXPRESSION_RE.fullmatch(expression)
        if match is None:
            return False
        return all(
            validate_field(part, spec.minimum, spec.maximum)
            for part, spec in zip(match.groups(), FIELDS)
        )

    @property
    def fields(self) -> dict[str, str]:
        return dict(zip((spec.name for spec in FIELDS), self.value.split()))

    def to_json(self) -> str:
        return json.dumps(self.value)

    @classmethod
    def from_json(cls, data: str | bytes) -> CronExpression:
        try:
            raw = json.loads(data)
        except json.JSONDecodeError as exc:
            raise InvalidCronExpressionError(f"cron expression is not valid JSON: {data!r}") from exc
        if not isinstance(raw, str):
            raise InvalidCronExpressionError("cron expression must be a JSON string")
        return cls(raw)
