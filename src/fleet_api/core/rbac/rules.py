"""Typed dynamic rules attached to roles.

Roles store their rules as a JSON document, for example::

    {"departmentRestriction": true, "timeRestriction": true, "budgetLimit": 1000}

:func:`parse_dynamic_rules` turns that document into an ordered tuple of rule
objects. Each rule inspects a :class:`RuleContext` and returns ``None`` when it
has nothing to say, a denial, or an approval-pending allow. Order is fixed:
department, time, budget, trust. The first denial wins.
"""

from __future__ import annotations

import abc
import numbers
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from fleet_api.core.rbac.approval import (
    ADMIN_APPROVAL_THRESHOLD,
    format_amount,
    resolve_approval_level,
)
from fleet_api.core.rbac.types import (
    DynamicPermissionContext,
    MissingContextPolicy,
    PermissionResult,
)

DEPARTMENT_DENIED_REASON = "Access restricted to assigned department"

DEFAULT_START_HOUR = 8
DEFAULT_END_HOUR = 18


class InvalidRuleDocumentError(ValueError):
    """Raised when a stored dynamic-rules document cannot be interpreted."""


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at, resolved once per role."""

    context: DynamicPermissionContext
    now: datetime
    trust_score: int
    managed_departments: frozenset[str] = field(default_factory=frozenset)
    missing_context_policy: MissingContextPolicy = MissingContextPolicy.SKIP
    admin_threshold: float = ADMIN_APPROVAL_THRESHOLD
    currency_label: str = "Kč"


class DynamicRule(abc.ABC):
    """Base class for a single contextual restriction."""

    kind: ClassVar[str]

    @abc.abstractmethod
    def evaluate(self, ctx: RuleContext) -> PermissionResult | None:
        """Return a verdict, or ``None`` when the rule does not apply."""

    @abc.abstractmethod
    def to_document(self) -> dict[str, Any]:
        """Return the document fragment this rule was parsed from."""


@dataclass(frozen=True)
class DepartmentRestriction(DynamicRule):
    """Only departments the role may manage are accessible."""

    kind: ClassVar[str] = "department"

    def evaluate(self, ctx: RuleContext) -> PermissionResult | None:
        department = ctx.context.department
        if not department:
            if ctx.missing_context_policy is MissingContextPolicy.DENY:
                return PermissionResult.deny(DEPARTMENT_DENIED_REASON)
            return None
        if department not in ctx.managed_departments:
            return PermissionResult.deny(DEPARTMENT_DENIED_REASON)
        return None

    def to_document(self) -> dict[str, Any]:
        return {"departmentRestriction": True}


@dataclass(frozen=True)
class TimeRestriction(DynamicRule):
    """Access is limited to the hours ``[start_hour, end_hour)``.

    ``explicit`` marks a window written into the role document. Windows
    parsed from ``true`` follow the configured business hours instead.
    """

    kind: ClassVar[str] = "time"

    start_hour: int = DEFAULT_START_HOUR
    end_hour: int = DEFAULT_END_HOUR
    explicit: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise InvalidRuleDocumentError(
                f"Invalid business hours window {self.start_hour}-{self.end_hour}"
            )

    @property
    def reason(self) -> str:
        return f"Access restricted to business hours ({self.start_hour}:00 - {self.end_hour}:00)"

    def evaluate(self, ctx: RuleContext) -> PermissionResult | None:
        hour = ctx.now.hour
        if hour < self.start_hour or hour >= self.end_hour:
            return PermissionResult.deny(self.reason)
        return None

    def to_document(self) -> dict[str, Any]:
        if not self.explicit:
            return {"timeRestriction": True}
        return {"timeRestriction": {"start": self.start_hour, "end": self.end_hour}}


@dataclass(frozen=True)
class BudgetLimit(DynamicRule):
    """Amounts above ``ceiling`` stay allowed but need approval."""

    kind: ClassVar[str] = "budget"

    ceiling: float

    def evaluate(self, ctx: RuleContext) -> PermissionResult | None:
        amount = ctx.context.amount
        if amount is None or amount <= self.ceiling:
            return None
        level = resolve_approval_level(amount, threshold=ctx.admin_threshold)
        reason = (
            f"Amount exceeds approval limit of {format_amount(self.ceiling)} {ctx.currency_label}"
        )
        return PermissionResult.pending_approval(level, reason.rstrip())

    def to_document(self) -> dict[str, Any]:
        return {"budgetLimit": self.ceiling}


@dataclass(frozen=True)
class TrustFloor(DynamicRule):
    """The subject's stored trust score must reach ``minimum``."""

    kind: ClassVar[str] = "trust"

    minimum: float

    def evaluate(self, ctx: RuleContext) -> PermissionResult | None:
        if ctx.trust_score < self.minimum:
            return PermissionResult.deny(
                f"Trust score too low ({format_amount(ctx.trust_score)}/{format_amount(self.minimum)})"
            )
        return None

    def to_document(self) -> dict[str, Any]:
        return {"minTrustScore": self.minimum}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _positive_number(document: Mapping[str, Any], key: str) -> float | None:
    value = document.get(key)
    if value is None or value is False:
        return None
    if not _is_number(value):
        raise InvalidRuleDocumentError(f"'{key}' must be a number")
    if value <= 0:
        return None
    return float(value)


def _flag(document: Mapping[str, Any], key: str) -> bool:
    value = document.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidRuleDocumentError(f"'{key}' must be a boolean")
    return value


def _time_rule(value: Any, *, default_window: tuple[int, int]) -> TimeRestriction | None:
    if value is None or value is False:
        return None
    if value is True:
        return TimeRestriction(start_hour=default_window[0], end_hour=default_window[1])
    if isinstance(value, Mapping):
        start = value.get("start")
        end = value.get("end")
        if not all(isinstance(hour, int) and not isinstance(hour, bool) for hour in (start, end)):
            raise InvalidRuleDocumentError(
                "'timeRestriction' window needs integer 'start' and 'end' hours"
            )
        return TimeRestriction(start_hour=start, end_hour=end, explicit=True)
    raise InvalidRuleDocumentError("'timeRestriction' must be a boolean or an hours window")


def parse_dynamic_rules(
    document: Mapping[str, Any] | None,
    *,
    default_window: tuple[int, int] = (DEFAULT_START_HOUR, DEFAULT_END_HOUR),
) -> tuple[DynamicRule, ...]:
    """Parse a stored rules document into evaluation order.

    Unknown keys are ignored. Falsy values (``false``, ``0``) disable a rule,
    matching how role templates switch rules off.
    """
    if not document:
        return ()
    if not isinstance(document, Mapping):
        raise InvalidRuleDocumentError("Dynamic rules must be a JSON object")

    rules: list[DynamicRule] = []
    if _flag(document, "departmentRestriction"):
        rules.append(DepartmentRestriction())
    time_rule = _time_rule(document.get("timeRestriction"), default_window=default_window)
    if time_rule is not None:
        rules.append(time_rule)
    ceiling = _positive_number(document, "budgetLimit")
    if ceiling is not None:
        rules.append(BudgetLimit(ceiling=ceiling))
    minimum = _positive_number(document, "minTrustScore")
    if minimum is not None:
        rules.append(TrustFloor(minimum=minimum))
    return tuple(rules)


def rules_to_document(rules: Iterable[DynamicRule]) -> dict[str, Any]:
    """Render rules back into the stored document shape."""
    document: dict[str, Any] = {}
    for rule in rules:
        document.update(rule.to_document())
    return document


def evaluate_rules(rules: Iterable[DynamicRule], ctx: RuleContext) -> PermissionResult:
    """Apply ``rules`` in order; first denial wins, approval carries forward."""
    pending: PermissionResult | None = None
    for rule in rules:
        verdict = rule.evaluate(ctx)
        if verdict is None:
            continue
        if not verdict.allowed:
            return verdict
        if verdict.requires_approval:
            pending = verdict
    return pending or PermissionResult.allow()


__all__ = [
    "BudgetLimit",
    "DEPARTMENT_DENIED_REASON",
    "DepartmentRestriction",
    "DynamicRule",
    "InvalidRuleDocumentError",
    "RuleContext",
    "TimeRestriction",
    "TrustFloor",
    "evaluate_rules",
    "parse_dynamic_rules",
    "rules_to_document",
]
