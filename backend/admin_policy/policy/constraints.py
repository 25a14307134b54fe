"""
Permission constraints: typed shape, most-restrictive merge, and evaluation
against an action context.

A constraint map narrows a grant. Absent keys leave the grant unconstrained;
a present allow-list permits only its members (an empty list permits nothing).
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class GeographicConstraint(BaseModel):
    model_config = ConfigDict(extra="forbid")

    governorates: list[str] | None = None
    cities: list[str] | None = None
    districts: list[str] | None = None


class TimeConstraint(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start: str
    end: str
    # 0 = Sunday ... 6 = Saturday
    days: list[int] = Field(default_factory=lambda: list(range(7)))

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError(f"'{value}' is not a HH:MM time")
        return value

    @field_validator("days")
    @classmethod
    def _check_days(cls, value: list[int]) -> list[int]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"Day {day} must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))


class PermissionConstraints(BaseModel):
    model_config = ConfigDict(extra="forbid")

    geographic: GeographicConstraint | None = None
    provider_categories: list[str] | None = None
    amount_limit: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    own_only: bool | None = None
    assigned_only: bool | None = None
    requires_approval: bool | None = None
    approval_threshold: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    fields: list[str] | None = None
    time_restriction: TimeConstraint | None = None
    aggregated_only: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def parse_constraints(raw: Mapping[str, Any] | None) -> PermissionConstraints:
    """Validate a stored constraint map.

    Raises:
        ConfigurationError: If the map has unknown keys or malformed values
    """
    try:
        return PermissionConstraints.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise ConfigurationError(
            "Malformed permission constraints",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def _min_ceiling(values: Iterable[float | None]) -> float | None:
    present = [value for value in values if value is not None]
    return min(present) if present else None


def _any_restriction(values: Iterable[bool | None]) -> bool | None:
    present = [value for value in values if value is not None]
    if not present:
        return None
    return any(present)


def _intersect(values: Iterable[list[str] | None]) -> list[str] | None:
    present = [value for value in values if value is not None]
    if not present:
        return None
    allowed = set(present[0])
    for value in present[1:]:
        allowed &= set(value)
    return [item for item in present[0] if item in allowed]


def _merge_time(values: Iterable[TimeConstraint | None]) -> TimeConstraint | None:
    present = [value for value in values if value is not None]
    if not present:
        return None
    days = set(present[0].days)
    for value in present[1:]:
        days &= set(value.days)
    return TimeConstraint.model_construct(
        start=max(value.start for value in present),
        end=min(value.end for value in present),
        days=sorted(days),
    )


def merge_constraints(*sources: PermissionConstraints) -> PermissionConstraints:
    """Merge constraints from several grant sources; the most restrictive value wins.

    Numeric ceilings take the minimum, boolean restrictions OR together,
    allow-lists intersect, and time windows intersect.
    """
    geographic_sources = [source.geographic for source in sources if source.geographic]
    geographic = None
    if geographic_sources:
        geographic = GeographicConstraint(
            governorates=_intersect(g.governorates for g in geographic_sources),
            cities=_intersect(g.cities for g in geographic_sources),
            districts=_intersect(g.districts for g in geographic_sources),
        )

    return PermissionConstraints.model_construct(
        geographic=geographic,
        provider_categories=_intersect(s.provider_categories for s in sources),
        amount_limit=_min_ceiling(s.amount_limit for s in sources),
        own_only=_any_restriction(s.own_only for s in sources),
        assigned_only=_any_restriction(s.assigned_only for s in sources),
        requires_approval=_any_restriction(s.requires_approval for s in sources),
        approval_threshold=_min_ceiling(s.approval_threshold for s in sources),
        fields=_intersect(s.fields for s in sources),
        time_restriction=_merge_time(s.time_restriction for s in sources),
        aggregated_only=_any_restriction(s.aggregated_only for s in sources),
    )


@dataclass(frozen=True)
class ConstraintCheck:
    allowed: bool
    reason: str | None = None
    requires_approval: bool = False


def _outside(allowed: list[str] | None, value: Any) -> bool:
    return allowed is not None and value is not None and str(value) not in allowed


def _within_time(restriction: TimeConstraint, now: datetime) -> bool:
    # Python weekday() is Monday = 0; the stored days use Sunday = 0.
    day = (now.weekday() + 1) % 7
    if day not in restriction.days:
        return False
    current = now.strftime("%H:%M")
    return restriction.start <= current <= restriction.end


def check_constraints(
    constraints: PermissionConstraints,
    context: Mapping[str, Any],
    *,
    admin_id: Any,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> ConstraintCheck:
    """Evaluate merged grant constraints against an action context.

    Checks run in a fixed order and the first failure is returned:
    geography, amount limit, ownership, assignment, provider category, time.
    Context values that are absent skip their check.
    """
    geo = constraints.geographic
    if geo is not None:
        if (
            _outside(geo.governorates, context.get("governorate_id"))
            or _outside(geo.cities, context.get("city_id"))
            or _outside(geo.districts, context.get("district_id"))
        ):
            return ConstraintCheck(allowed=False, reason="geographic_restriction")

    requires_approval = False
    amount = context.get("amount")
    if constraints.amount_limit is not None and amount is not None:
        try:
            value = float(amount)
        except (TypeError, ValueError, OverflowError):
            value = math.nan
        if isinstance(amount, bool) or not math.isfinite(value):
            logger.warning("constraint_check invalid_amount admin_id=%s amount=%r", admin_id, amount)
            return ConstraintCheck(allowed=False, reason="invalid_amount")
        exceeded = value > constraints.amount_limit
        if exceeded:
            if not constraints.requires_approval:
                return ConstraintCheck(allowed=False, reason="amount_exceeded")
            requires_approval = True

    owner_id = context.get("owner_id")
    if constraints.own_only and owner_id is not None and str(owner_id) != str(admin_id):
        return ConstraintCheck(allowed=False, reason="own_only")

    assigned_to = context.get("assigned_to")
    if constraints.assigned_only and assigned_to is not None and str(assigned_to) != str(admin_id):
        return ConstraintCheck(allowed=False, reason="not_assigned")

    if _outside(constraints.provider_categories, context.get("provider_category")):
        return ConstraintCheck(allowed=False, reason="provider_category")

    if constraints.time_restriction is not None:
        current = now or datetime.now(timezone.utc)
        if tz is not None:
            current = current.astimezone(tz)
        if not _within_time(constraints.time_restriction, current):
            return ConstraintCheck(allowed=False, reason="time_restriction")

    return ConstraintCheck(allowed=True, requires_approval=requires_approval)
