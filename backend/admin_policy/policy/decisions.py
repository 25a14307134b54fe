"""Value objects returned by the resolver and the escalation engine."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class OutcomeKind(str, Enum):
    PROCEED = "proceed"
    NOTIFY = "notify"
    REQUIRE_APPROVAL = "require_approval"
    BLOCK = "block"


@dataclass(frozen=True)
class EscalationTarget:
    role_code: str | None = None
    admin_id: uuid.UUID | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "role_code": self.role_code,
            "admin_id": str(self.admin_id) if self.admin_id else None,
        }


@dataclass(frozen=True)
class Resolution:
    decision: Decision
    constraints: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    requires_approval: bool = False

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    @classmethod
    def deny(cls, reason: str) -> "Resolution":
        return cls(decision=Decision.DENY, reason=reason)


@dataclass(frozen=True)
class EscalationOutcome:
    kind: OutcomeKind
    rule_id: uuid.UUID | None = None
    target: EscalationTarget | None = None
    request_id: uuid.UUID | None = None
    reason: str | None = None

    @property
    def may_proceed(self) -> bool:
        """True when the caller may execute the action now."""
        return self.kind in (OutcomeKind.PROCEED, OutcomeKind.NOTIFY)

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "rule_id": str(self.rule_id) if self.rule_id else None,
            "target": self.target.as_dict() if self.target else None,
            "request_id": str(self.request_id) if self.request_id else None,
            "reason": self.reason,
        }

    @classmethod
    def proceed(cls) -> "EscalationOutcome":
        return cls(kind=OutcomeKind.PROCEED)
