"""
Trigger condition evaluation for escalation rules.

Each trigger type reads only its own keys from `trigger_conditions`; unknown
keys are ignored. A rule whose required key is missing never triggers. A
required key that is present but malformed is a configuration error, which
the engine turns into a block.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import ValidationError

from ..errors import ConfigurationError
from .predicates import parse_predicate

logger = logging.getLogger(__name__)


class TriggerType(str, Enum):
    THRESHOLD = "threshold"
    COUNT = "count"
    TIME = "time"
    PATTERN = "pattern"


class EscalationAction(str, Enum):
    REQUIRE_APPROVAL = "require_approval"
    NOTIFY = "notify"
    BLOCK = "block"


REQUIRED_CONDITION_KEYS: dict[TriggerType, str] = {
    TriggerType.THRESHOLD: "amount",
    TriggerType.COUNT: "count_per_day",
    TriggerType.TIME: "time_limit_minutes",
    TriggerType.PATTERN: "predicate",
}

DEFAULT_TIME_REFERENCE = "started_at"


def _number(value: Any, *, name: str) -> float:
    # bool is an int subclass; a flag is never a valid amount.
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or (isinstance(value, float) and not math.isfinite(value))
    ):
        raise ConfigurationError(
            f"Trigger condition '{name}' must be a finite number",
            details={"key": name, "value": repr(value)},
        )
    return float(value)


def parse_timestamp(value: Any, *, name: str) -> datetime:
    """Accept a datetime or an ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ConfigurationError(
                f"'{name}' is not an ISO-8601 timestamp",
                details={"key": name, "value": value},
            ) from exc
    else:
        raise ConfigurationError(
            f"'{name}' must be a timestamp",
            details={"key": name, "value": repr(value)},
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def action_timestamp(context: Mapping[str, Any]) -> datetime:
    raw = context.get("timestamp")
    if raw is None:
        return datetime.now(timezone.utc)
    return parse_timestamp(raw, name="timestamp")


def has_required_condition(trigger_type: TriggerType, conditions: Mapping[str, Any]) -> bool:
    key = REQUIRED_CONDITION_KEYS[trigger_type]
    return conditions.get(key) is not None


def validate_trigger_conditions(trigger_type: TriggerType, conditions: Mapping[str, Any]) -> None:
    """Write-time validation of a rule's trigger conditions.

    Raises:
        ConfigurationError: If the required key is missing or malformed
    """
    key = REQUIRED_CONDITION_KEYS[trigger_type]
    if conditions.get(key) is None:
        raise ConfigurationError(
            f"'{trigger_type.value}' rules require trigger condition '{key}'",
            details={"key": key},
        )
    if trigger_type is TriggerType.PATTERN:
        _predicate(conditions)
        return
    value = _number(conditions[key], name=key)
    if value < 0:
        raise ConfigurationError(
            f"Trigger condition '{key}' must not be negative",
            details={"key": key, "value": value},
        )
    if trigger_type is TriggerType.TIME:
        reference = conditions.get("reference", DEFAULT_TIME_REFERENCE)
        if not isinstance(reference, str) or not reference:
            raise ConfigurationError(
                "Trigger condition 'reference' must be a context field name",
                details={"key": "reference", "value": repr(reference)},
            )


def _predicate(conditions: Mapping[str, Any]):
    try:
        return parse_predicate(conditions["predicate"])
    except ValidationError as exc:
        raise ConfigurationError(
            "Trigger condition 'predicate' is not a valid predicate",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def threshold_satisfied(conditions: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    limit = _number(conditions["amount"], name="amount")
    amount = context.get("amount")
    if amount is None:
        return False
    if (
        isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or (isinstance(amount, float) and not math.isfinite(amount))
    ):
        raise ConfigurationError(
            "Action context 'amount' must be a finite number",
            details={"key": "amount", "value": repr(amount)},
        )
    return amount > limit


def count_satisfied(conditions: Mapping[str, Any], action_count: int) -> bool:
    limit = _number(conditions["count_per_day"], name="count_per_day")
    return action_count > limit


def time_satisfied(conditions: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    limit_minutes = _number(conditions["time_limit_minutes"], name="time_limit_minutes")
    reference = conditions.get("reference", DEFAULT_TIME_REFERENCE)
    if not isinstance(reference, str) or not reference:
        raise ConfigurationError(
            "Trigger condition 'reference' must be a context field name",
            details={"key": "reference", "value": repr(reference)},
        )
    raw_started = context.get(reference)
    if raw_started is None:
        return False
    started = parse_timestamp(raw_started, name=reference)
    elapsed = action_timestamp(context) - started
    return elapsed.total_seconds() / 60 > limit_minutes


def pattern_satisfied(conditions: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    return _predicate(conditions).matches(context)


def trigger_satisfied(
    trigger_type: TriggerType,
    conditions: Mapping[str, Any],
    context: Mapping[str, Any],
    *,
    action_count: int | None = None,
) -> bool:
    """Decide whether a rule's condition holds for the action.

    Raises:
        ConfigurationError: If a condition value or context value is malformed
    """
    if not has_required_condition(trigger_type, conditions):
        logger.warning(
            "trigger_skipped reason=missing_condition trigger_type=%s key=%s",
            trigger_type.value,
            REQUIRED_CONDITION_KEYS[trigger_type],
        )
        return False

    if trigger_type is TriggerType.THRESHOLD:
        return threshold_satisfied(conditions, context)
    if trigger_type is TriggerType.COUNT:
        if action_count is None:
            raise ConfigurationError("Count trigger evaluated without an action count")
        return count_satisfied(conditions, action_count)
    if trigger_type is TriggerType.TIME:
        return time_satisfied(conditions, context)
    return pattern_satisfied(conditions, context)
