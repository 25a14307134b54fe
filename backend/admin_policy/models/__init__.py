from .base import Base
from .permission import Permission
from .role import Role
from .role_permission import RolePermission
from .admin_user import AdminUser
from .admin_role_binding import AdminRoleBinding
from .permission_override import DirectPermissionOverride
from .escalation_rule import EscalationRule
from .approval_request import ApprovalRequest
from .action_counter import ActionCounter
from .audit_log import AuditLog

__all__ = [
    "Base",
    "Permission",
    "Role",
    "RolePermission",
    "AdminUser",
    "AdminRoleBinding",
    "DirectPermissionOverride",
    "EscalationRule",
    "ApprovalRequest",
    "ActionCounter",
    "AuditLog",
]
