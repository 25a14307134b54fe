from .admin_access_service import AdminAccessService
from .approval_service import ApprovalService
from .authorization_service import AuthorizationService
from .catalog_service import CatalogService
from .escalation_engine import EscalationEngine
from .escalation_rule_service import EscalationRuleService
from .permission_resolver import PermissionResolver
from .role_service import RoleService

__all__ = [
    "AdminAccessService",
    "ApprovalService",
    "AuthorizationService",
    "CatalogService",
    "EscalationEngine",
    "EscalationRuleService",
    "PermissionResolver",
    "RoleService",
]
