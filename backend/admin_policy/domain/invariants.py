"""
Domain invariants for the policy data model.

All invariants are checked BEFORE any side effects (database writes). The
database carries matching unique constraints, but a violation must be
rejected here with an explicit error rather than surface as an integrity
failure at resolve time.

INVARIANTS:
- binding.unique_role: at most one binding per (admin, role)
- binding.single_primary: at most one primary binding per admin
- override.unique_pair: at most one override per (admin, permission)
- approval.pending_only: approval requests only leave the pending status
- catalog.code_format: permission code is "<resource>.<action>"
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class InvariantViolation(Exception):
    """
    Raised when a domain invariant is violated.

    This is a domain-level error that should be handled explicitly,
    never silently ignored.
    """

    def __init__(self, message: str, *, invariant: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.invariant = invariant
        self.details = details or {}

        logger.error(
            "invariant_violation invariant=%s message=%s details=%s",
            invariant,
            message,
            details,
        )


def validate_unique_role_binding(
    already_bound: bool,
    *,
    admin_id: Any,
    role_code: str,
) -> None:
    """
    An admin can hold a given role through one binding only.

    Raises:
        InvariantViolation: If the admin is already bound to the role
    """
    if already_bound:
        raise InvariantViolation(
            f"Admin already holds role '{role_code}'",
            invariant="binding.unique_role",
            details={"admin_id": str(admin_id), "role_code": role_code},
        )


def validate_single_primary(
    primary_role_codes: list[str],
    *,
    admin_id: Any,
) -> None:
    """
    An admin has at most one primary binding at any time.

    Raises:
        InvariantViolation: If more than one binding is flagged primary
    """
    if len(primary_role_codes) > 1:
        raise InvariantViolation(
            "Admin cannot have more than one primary role",
            invariant="binding.single_primary",
            details={
                "admin_id": str(admin_id),
                "primary_role_codes": sorted(primary_role_codes),
            },
        )


def validate_unique_override(
    existing_count: int,
    *,
    admin_id: Any,
    permission_code: str,
) -> None:
    """
    An (admin, permission) pair has at most one direct override.

    Writers replace the existing row; finding more than one means the
    replacement path was bypassed.

    Raises:
        InvariantViolation: If more than one override exists for the pair
    """
    if existing_count > 1:
        raise InvariantViolation(
            f"Duplicate overrides for permission '{permission_code}'",
            invariant="override.unique_pair",
            details={
                "admin_id": str(admin_id),
                "permission_code": permission_code,
                "existing_count": existing_count,
            },
        )


def validate_pending_transition(
    current_status: str,
    new_status: str,
    *,
    request_id: Any,
) -> None:
    """
    Approval requests move from pending to a terminal status exactly once.

    Raises:
        InvariantViolation: If the request already left the pending status
    """
    if current_status != "pending":
        raise InvariantViolation(
            f"Cannot move approval request from '{current_status}' to '{new_status}'",
            invariant="approval.pending_only",
            details={
                "request_id": str(request_id),
                "current_status": current_status,
                "new_status": new_status,
            },
        )


def validate_permission_code(code: str, *, resource: str, action: str) -> None:
    """
    A permission code is always "<resource>.<action>".

    Raises:
        InvariantViolation: If the code does not match its resource and action
    """
    expected = f"{resource}.{action}"
    if code != expected:
        raise InvariantViolation(
            f"Permission code '{code}' must equal '{expected}'",
            invariant="catalog.code_format",
            details={"code": code, "resource": resource, "action": action},
        )
