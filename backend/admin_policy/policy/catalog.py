"""
Permission Catalog - static registry of resource and action codes.

Every permission code is "<resource>.<action>" where both halves come from the
frozen sets below. The `permissions` table holds the catalog rows; this module
is what those rows, role bundles, overrides and escalation rules are validated
against.

SECURITY:
- No wildcard permissions
- Explicit enumeration only
"""
from __future__ import annotations

from enum import Enum
from typing import Final


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


RESOURCE_CODES: Final[frozenset[str]] = frozenset({
    "dashboard",
    "providers",
    "orders",
    "customers",
    "finance",
    "analytics",
    "support",
    "locations",
    "team",
    "approvals",
    "tasks",
    "messages",
    "announcements",
    "promotions",
    "settings",
    "activity_log",
})

ACTION_SEVERITY: Final[dict[str, Severity]] = {
    "view": Severity.LOW,
    "create": Severity.MEDIUM,
    "update": Severity.MEDIUM,
    "delete": Severity.HIGH,
    "approve": Severity.HIGH,
    "reject": Severity.HIGH,
    "export": Severity.MEDIUM,
    "assign": Severity.MEDIUM,
    "escalate": Severity.MEDIUM,
    "refund": Severity.CRITICAL,
    "ban": Severity.CRITICAL,
    "settle": Severity.CRITICAL,
}

ACTION_CODES: Final[frozenset[str]] = frozenset(ACTION_SEVERITY)

ALLOWED_SEVERITIES: Final[frozenset[str]] = frozenset(s.value for s in Severity)

# Permissions guarding the administration API itself.
TEAM_VIEW: Final = "team.view"
TEAM_UPDATE: Final = "team.update"
SETTINGS_VIEW: Final = "settings.view"
SETTINGS_UPDATE: Final = "settings.update"
APPROVALS_VIEW: Final = "approvals.view"
APPROVALS_APPROVE: Final = "approvals.approve"
ACTIVITY_LOG_VIEW: Final = "activity_log.view"

SUPER_ADMIN_ROLE: Final = "super_admin"


def permission_code(resource: str, action: str) -> str:
    return f"{resource}.{action}"


def split_permission_code(code: str) -> tuple[str, str]:
    """Split "<resource>.<action>" into its halves.

    Raises:
        ValueError: If the code is not exactly two dot-separated parts
    """
    parts = code.split(".")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid permission code '{code}'")
    return parts[0], parts[1]


def validate_resource(resource: str) -> None:
    if resource not in RESOURCE_CODES:
        raise ValueError(f"Unknown resource code '{resource}'")


def validate_action(action: str) -> None:
    if action not in ACTION_CODES:
        raise ValueError(f"Unknown action code '{action}'")


def default_severity(action: str) -> Severity:
    return ACTION_SEVERITY.get(action, Severity.MEDIUM)


def all_permission_codes() -> list[str]:
    return sorted(
        permission_code(resource, action)
        for resource in RESOURCE_CODES
        for action in ACTION_CODES
    )


def _codes(resources: list[str], actions: list[str]) -> frozenset[str]:
    return frozenset(
        permission_code(resource, action) for resource in resources for action in actions
    )


# Default role bundles loaded by the seed script.
DEFAULT_ROLE_PERMISSIONS: Final[dict[str, frozenset[str]]] = {
    SUPER_ADMIN_ROLE: frozenset(all_permission_codes()),
    "general_moderator": (
        _codes(
            ["dashboard", "providers", "orders", "customers", "support", "locations",
             "promotions", "tasks", "messages", "announcements"],
            ["view", "create", "update"],
        )
        | _codes(["team", "approvals"], ["view"])
    ),
    "store_supervisor": _codes(
        ["dashboard", "providers", "orders", "support", "messages"], ["view", "update"]
    ),
    "support_agent": (
        _codes(["dashboard", "orders", "customers", "support", "messages"], ["view"])
        | frozenset({"orders.refund", "support.update", "support.escalate"})
    ),
    "finance_manager": (
        _codes(["dashboard", "finance", "orders", "analytics"], ["view", "export"])
        | frozenset({"finance.refund", "finance.settle", "finance.approve", "approvals.view",
                     "approvals.approve"})
    ),
}
