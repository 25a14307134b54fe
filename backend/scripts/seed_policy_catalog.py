"""
Seed the permission catalog and the default role bundles.

Run once after `alembic upgrade head`. Safe to re-run: existing permissions
and roles are left alone, and a role's bundle is only written when the role
is created by this run.

Usage:
    python -m scripts.seed_policy_catalog
"""
import asyncio

from admin_policy.crud.permission import PermissionRepository
from admin_policy.crud.role import RoleRepository
from admin_policy.database import AsyncSessionLocal
from admin_policy.policy import catalog

DEFAULT_ROLES = [
    {
        "code": catalog.SUPER_ADMIN_ROLE,
        "name": "Super Administrator",
        "description": "Every permission in the catalog",
        "is_system": True,
    },
    {
        "code": "general_moderator",
        "name": "General Moderator",
        "description": "Day-to-day operations across the marketplace",
        "is_system": False,
    },
    {
        "code": "store_supervisor",
        "name": "Store Supervisor",
        "description": "Oversees providers and their orders",
        "is_system": False,
    },
    {
        "code": "support_agent",
        "name": "Support Agent",
        "description": "Handles customer tickets and small refunds",
        "is_system": False,
    },
    {
        "code": "finance_manager",
        "name": "Finance Manager",
        "description": "Refunds, settlements and financial reporting",
        "is_system": False,
    },
]


def _display_name(code: str) -> str:
    resource, action = catalog.split_permission_code(code)
    return f"{action.capitalize()} {resource.replace('_', ' ')}"


async def seed_policy_catalog() -> None:
    """Create missing catalog permissions and default roles."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            permission_repo = PermissionRepository(session)
            role_repo = RoleRepository(session)

            print("Seeding permissions...")
            codes = catalog.all_permission_codes()
            existing = await permission_repo.existing_codes(set(codes))
            created = 0
            for code in codes:
                if code in existing:
                    continue
                resource, action = catalog.split_permission_code(code)
                await permission_repo.create(
                    code=code,
                    resource=resource,
                    action=action,
                    severity=catalog.default_severity(action).value,
                    display_name=_display_name(code),
                    is_system=True,
                )
                created += 1
            print(f"  {created} created, {len(existing)} already present")

            print("\nSeeding roles...")
            for role_data in DEFAULT_ROLES:
                if await role_repo.get_by_code(role_data["code"]) is not None:
                    print(f"  Role '{role_data['code']}' already exists, skipping...")
                    continue
                await role_repo.create(**role_data)
                bundle = catalog.DEFAULT_ROLE_PERMISSIONS.get(role_data["code"], frozenset())
                await role_repo.replace_permissions(role_data["code"], set(bundle))
                print(f"  Created role: {role_data['code']} ({len(bundle)} permissions)")

    print("\nCatalog seeding completed")


if __name__ == "__main__":
    asyncio.run(seed_policy_catalog())
