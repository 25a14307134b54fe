"""
Permission Resolver - the single place where an admin's grants are computed.

Effective grant set = (role-granted ∪ direct-granted) \\ direct-denied

- Inactive or unknown admins hold nothing.
- Expired role bindings and expired overrides contribute nothing.
- A direct deny beats every grant.
- Role grants carry no constraints; a direct grant may. Constraints from all
  contributing sources merge to the most restrictive value.

Unknown permission codes and malformed constraint maps are configuration
errors: they are logged at error level and the decision is DENY.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.admin_role_binding import AdminRoleBindingRepository
from ...crud.admin_user import AdminUserRepository
from ...crud.permission import PermissionRepository
from ...crud.permission_override import PermissionOverrideRepository
from ...crud.role import RoleRepository
from ...errors import ConfigurationError
from ...models.base import utcnow
from ...models.permission_override import DirectPermissionOverride
from ...models.role import Role
from ...policy.catalog import split_permission_code
from ...policy.constraints import (
    GeographicConstraint,
    PermissionConstraints,
    merge_constraints,
    parse_constraints,
)
from ...policy.decisions import Decision, Resolution

logger = logging.getLogger(__name__)


@dataclass
class GrantSet:
    """Everything one admin holds at one instant."""

    admin_id: uuid.UUID
    role_granted: set[str] = field(default_factory=set)
    direct_grants: dict[str, DirectPermissionOverride] = field(default_factory=dict)
    direct_denied: set[str] = field(default_factory=set)

    @property
    def effective(self) -> set[str]:
        return (self.role_granted | set(self.direct_grants)) - self.direct_denied


class PermissionResolver:
    """Resolves permission codes for administrators.

    All permission checks in the application go through this class.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.admin_repo = AdminUserRepository(session)
        self.binding_repo = AdminRoleBindingRepository(session)
        self.override_repo = PermissionOverrideRepository(session)
        self.permission_repo = PermissionRepository(session)
        self.role_repo = RoleRepository(session)

    async def load_grants(
        self, admin_id: uuid.UUID, *, now: datetime | None = None
    ) -> GrantSet | None:
        """Collect the admin's current grants; None for unknown or inactive admins."""
        admin = await self.admin_repo.get_by_id(admin_id)
        if admin is None or not admin.is_active:
            return None

        now = now or utcnow()
        grants = GrantSet(admin_id=admin_id)

        bindings = await self.binding_repo.list_active_for_admin(admin_id, now)
        role_codes = {binding.role_code for binding, _role in bindings}
        by_role = await self.role_repo.get_permission_codes_for_roles(role_codes)
        for codes in by_role.values():
            grants.role_granted |= codes

        for override in await self.override_repo.list_active_for_admin(admin_id, now):
            if override.grant_type == "deny":
                grants.direct_denied.add(override.permission_code)
            else:
                grants.direct_grants[override.permission_code] = override
        return grants

    async def resolve(
        self,
        admin_id: uuid.UUID,
        permission_code: str,
        *,
        now: datetime | None = None,
    ) -> Resolution:
        """Decide whether the admin holds `permission_code` and under what constraints."""
        grants = await self.load_grants(admin_id, now=now)
        if grants is None:
            return self._deny(admin_id, permission_code, "admin_inactive")

        try:
            await self._require_catalog_code(permission_code)
        except ConfigurationError as exc:
            logger.error(
                "configuration_error admin_id=%s permission=%s error=%s",
                admin_id,
                permission_code,
                exc.message,
            )
            return self._deny(admin_id, permission_code, "unknown_permission")

        if permission_code in grants.direct_denied:
            return self._deny(admin_id, permission_code, "direct_deny")
        if permission_code not in grants.effective:
            return self._deny(admin_id, permission_code, "not_granted")

        sources: list[PermissionConstraints] = []
        override = grants.direct_grants.get(permission_code)
        if override is not None:
            try:
                sources.append(parse_constraints(override.constraints))
            except ConfigurationError as exc:
                logger.error(
                    "configuration_error admin_id=%s permission=%s error=%s details=%s",
                    admin_id,
                    permission_code,
                    exc.message,
                    exc.details,
                )
                return self._deny(admin_id, permission_code, "invalid_constraints")

        merged = merge_constraints(*sources) if sources else PermissionConstraints()
        return Resolution(decision=Decision.ALLOW, constraints=merged.to_dict())

    async def effective_permissions(
        self, admin_id: uuid.UUID, *, now: datetime | None = None
    ) -> set[str]:
        grants = await self.load_grants(admin_id, now=now)
        return grants.effective if grants is not None else set()

    async def accessible_resources(self, admin_id: uuid.UUID) -> list[str]:
        """Resources on which the admin holds the `view` action."""
        resources = set()
        for code in await self.effective_permissions(admin_id):
            resource, action = split_permission_code(code)
            if action == "view":
                resources.add(resource)
        return sorted(resources)

    async def resource_actions(self, admin_id: uuid.UUID, resource: str) -> list[str]:
        actions = set()
        for code in await self.effective_permissions(admin_id):
            code_resource, action = split_permission_code(code)
            if code_resource == resource:
                actions.add(action)
        return sorted(actions)

    async def primary_role(self, admin_id: uuid.UUID) -> Role | None:
        """The primary binding's role, else the oldest active binding's role."""
        admin = await self.admin_repo.get_by_id(admin_id)
        if admin is None or not admin.is_active:
            return None
        bindings = await self.binding_repo.list_active_for_admin(admin_id, utcnow())
        for binding, role in bindings:
            if binding.is_primary:
                return role
        return bindings[0][1] if bindings else None

    async def geographic_scope(self, admin_id: uuid.UUID) -> GeographicConstraint | None:
        """Union of geographic constraints across the admin's direct grants.

        None means no direct grant narrows geography.
        """
        grants = await self.load_grants(admin_id)
        if grants is None:
            return None

        governorates: set[str] = set()
        cities: set[str] = set()
        districts: set[str] = set()
        constrained = False
        for code, override in grants.direct_grants.items():
            if code in grants.direct_denied:
                continue
            try:
                geo = parse_constraints(override.constraints).geographic
            except ConfigurationError:
                logger.error(
                    "configuration_error admin_id=%s permission=%s error=invalid_constraints",
                    admin_id,
                    code,
                )
                continue
            if geo is None:
                continue
            constrained = True
            governorates.update(geo.governorates or [])
            cities.update(geo.cities or [])
            districts.update(geo.districts or [])

        if not constrained:
            return None
        return GeographicConstraint(
            governorates=sorted(governorates),
            cities=sorted(cities),
            districts=sorted(districts),
        )

    async def _require_catalog_code(self, permission_code: str) -> None:
        if await self.permission_repo.get_by_code(permission_code) is None:
            raise ConfigurationError(
                f"Unknown permission code '{permission_code}'",
                details={"permission_code": permission_code},
            )

    def _deny(self, admin_id: uuid.UUID, permission_code: str, reason: str) -> Resolution:
        logger.info(
            "permission_denied admin_id=%s permission=%s reason=%s",
            admin_id,
            permission_code,
            reason,
        )
        return Resolution.deny(reason)
