"""Checklist-based data quality scoring.

The scorer is a pure function over a field map. It is used three times per
batch: on each raw source record, on each canonical record, and inside the
merge engine to judge whether substituting a value from another source makes
a record better or worse.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from histomerge.domain.model import QualityCheck

MAX_SCORE = 100
MIN_SCORE = 0


class QualityScore(NamedTuple):
    score: int
    issues: tuple[str, ...]


@dataclass(frozen=True, slots=True, kw_only=True)
class QualityRule:
    """One weighted entry of a quality checklist."""

    field_name: str
    check: QualityCheck = QualityCheck.REQUIRED
    points: int = 0
    penalty: int = 0
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    allowed: tuple[object, ...] = ()
    description: str | None = None
    _compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.points < 0 or self.penalty < 0:
            raise ValueError("points and penalty must be non-negative")
        if self.check is QualityCheck.PATTERN:
            if self.pattern is None:
                raise ValueError(f"Pattern rule for {self.field_name!r} needs a pattern")
            object.__setattr__(self, "_compiled", re.compile(self.pattern))
        if self.check is QualityCheck.RANGE and self.minimum is None and self.maximum is None:
            raise ValueError(f"Range rule for {self.field_name!r} needs a minimum or maximum")

    def evaluate(self, fields: Mapping[str, object]) -> tuple[int, str | None]:
        """Return the points contributed by this rule and an optional issue."""

        value = fields.get(self.field_name)
        if _is_missing(value):
            return 0, self.description or f"Missing {self.field_name}"
        if self.check is QualityCheck.REQUIRED or self._is_valid(value):
            return self.points, None
        return -self.penalty, self.description or f"Invalid {self.field_name}"

    def _is_valid(self, value: object) -> bool:
        match self.check:
            case QualityCheck.RANGE:
                number = _as_number(value)
                if number is None:
                    return False
                if self.minimum is not None and number < self.minimum:
                    return False
                return not (self.maximum is not None and number > self.maximum)
            case QualityCheck.PATTERN:
                return (
                    isinstance(value, str)
                    and self._compiled is not None
                    and self._compiled.fullmatch(value) is not None
                )
            case QualityCheck.ALLOWED_VALUES:
                return value in self.allowed
            case _:
                return True


@dataclass(frozen=True, slots=True)
class QualityChecklist:
    """Configured set of quality rules for one entity type."""

    rules: tuple[QualityRule, ...] = ()

    @property
    def fields(self) -> frozenset[str]:
        return frozenset(rule.field_name for rule in self.rules)


def score(fields: Mapping[str, object], checklist: QualityChecklist) -> QualityScore:
    """Score ``fields`` against ``checklist``.

    Never raises on malformed input: a missing or invalid value contributes
    nothing (or its configured penalty) and adds an issue string. Fields that
    the checklist does not mention have no effect.
    """

    total = 0
    issues: list[str] = []
    for rule in checklist.rules:
        points, issue = rule.evaluate(fields)
        total += points
        if issue is not None and issue not in issues:
            issues.append(issue)
    return QualityScore(score=max(MIN_SCORE, min(MAX_SCORE, total)), issues=tuple(issues))


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, Decimal):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(Decimal(value.strip()))
        except InvalidOperation:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
