from .audit_service import AuditService, record_isolated

__all__ = ["AuditService", "record_isolated"]
