from fastapi import APIRouter

from .admin import admins as admin_admins
from .admin import approvals as admin_approvals
from .admin import audit as admin_audit
from .admin import decisions as admin_decisions
from .admin import escalation_rules as admin_escalation_rules
from .admin import permissions as admin_permissions
from .admin import roles as admin_roles

router = APIRouter()

_admin_routers = [
    admin_permissions.router,
    admin_roles.router,
    admin_decisions.router,
    admin_admins.router,
    admin_escalation_rules.router,
    admin_approvals.router,
    admin_audit.router,
]

for _router in _admin_routers:
    router.include_router(_router)
