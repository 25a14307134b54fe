"""
Approval inbox: pending requests created by the escalation engine and their
single move to a terminal status.

    pending -> approved | rejected | expired

Approvers must be active, routed to the request (directly or through an
active role binding), and not the requester.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.admin_role_binding import AdminRoleBindingRepository
from ...crud.admin_user import AdminUserRepository
from ...crud.approval_request import ApprovalRequestRepository
from ...domain.invariants import validate_pending_transition
from ...errors import NotFoundError, PermissionError
from ...models.approval_request import ApprovalRequest
from ...models.base import utcnow
from ..audit import AuditService

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_EXPIRED = "expired"


def approval_snapshot(request: ApprovalRequest) -> dict:
    return {
        "status": request.status,
        "resolved_by": str(request.resolved_by) if request.resolved_by else None,
        "resolved_at": request.resolved_at.isoformat() if request.resolved_at else None,
        "decision_notes": request.decision_notes,
    }


class ApprovalService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.approval_repo = ApprovalRequestRepository(session)
        self.admin_repo = AdminUserRepository(session)
        self.binding_repo = AdminRoleBindingRepository(session)
        self.audit_service = AuditService(session)

    async def _held_role_codes(self, admin_id: uuid.UUID) -> set[str]:
        bindings = await self.binding_repo.list_active_for_admin(admin_id, utcnow())
        return {binding.role_code for binding, _role in bindings}

    async def list_pending_for(self, admin_id: uuid.UUID) -> list[ApprovalRequest]:
        """Pending requests routed to the admin directly or via a held role."""
        admin = await self.admin_repo.get_by_id(admin_id)
        if admin is None or not admin.is_active:
            return []
        role_codes = await self._held_role_codes(admin_id)
        return await self.approval_repo.list_pending_for(admin_id, role_codes)

    async def list_requests(
        self,
        status: str | None = None,
        admin_id: uuid.UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ApprovalRequest]:
        return await self.approval_repo.list_by_filters(
            status=status, admin_id=admin_id, limit=limit, offset=offset
        )

    async def get(self, request_id: uuid.UUID) -> ApprovalRequest:
        request = await self.approval_repo.get_by_id(request_id)
        if request is None:
            raise NotFoundError("Approval request not found")
        return request

    async def approve(
        self,
        request_id: uuid.UUID,
        resolver_id: uuid.UUID,
        notes: str | None = None,
    ) -> ApprovalRequest:
        return await self._resolve(request_id, resolver_id, STATUS_APPROVED, notes)

    async def reject(
        self,
        request_id: uuid.UUID,
        resolver_id: uuid.UUID,
        notes: str | None = None,
    ) -> ApprovalRequest:
        return await self._resolve(request_id, resolver_id, STATUS_REJECTED, notes)

    async def expire(self, request_id: uuid.UUID) -> ApprovalRequest:
        """Move a pending request to expired. Invoked by an external scheduler."""
        request = await self.approval_repo.get_for_update(request_id)
        if request is None:
            raise NotFoundError("Approval request not found")
        await self._transition(request, STATUS_EXPIRED, resolver_id=None, notes=None)
        await self.session.commit()
        return request

    async def expire_stale(self, older_than: datetime) -> int:
        """Expire every pending request created before `older_than`."""
        stale = await self.approval_repo.list_pending_created_before(older_than)
        for request in stale:
            await self._transition(request, STATUS_EXPIRED, resolver_id=None, notes=None)
        await self.session.commit()
        if stale:
            logger.info("approvals_expired count=%d cutoff=%s", len(stale), older_than.isoformat())
        return len(stale)

    async def _resolve(
        self,
        request_id: uuid.UUID,
        resolver_id: uuid.UUID,
        new_status: str,
        notes: str | None,
    ) -> ApprovalRequest:
        request = await self.approval_repo.get_for_update(request_id)
        if request is None:
            raise NotFoundError("Approval request not found")
        validate_pending_transition(request.status, new_status, request_id=request.id)
        await self._require_routed_approver(request, resolver_id)
        await self._transition(request, new_status, resolver_id=resolver_id, notes=notes)
        await self.session.commit()
        return request

    async def _require_routed_approver(
        self, request: ApprovalRequest, resolver_id: uuid.UUID
    ) -> None:
        if resolver_id == request.admin_id:
            raise PermissionError("Requesters cannot resolve their own approval requests")
        resolver = await self.admin_repo.get_by_id(resolver_id)
        if resolver is None or not resolver.is_active:
            raise PermissionError("Approver account is not active")
        if request.escalate_to_admin_id is not None:
            if request.escalate_to_admin_id == resolver_id:
                return
        elif request.escalate_to_role_code in await self._held_role_codes(resolver_id):
            return
        logger.warning(
            "approval_denied reason=not_routed request_id=%s resolver_id=%s",
            request.id,
            resolver_id,
        )
        raise PermissionError("Approval request is not routed to this admin")

    async def _transition(
        self,
        request: ApprovalRequest,
        new_status: str,
        *,
        resolver_id: uuid.UUID | None,
        notes: str | None,
    ) -> None:
        validate_pending_transition(request.status, new_status, request_id=request.id)
        before = approval_snapshot(request)
        request.status = new_status
        request.resolved_at = utcnow()
        request.resolved_by = resolver_id
        request.decision_notes = notes
        await self.approval_repo.update(request)
        await self.audit_service.log(
            action=f"approval.{new_status}",
            entity_type="approval_request",
            entity_id=request.id,
            actor_id=resolver_id,
            actor_type="user" if resolver_id is not None else "system",
            before=before,
            after=approval_snapshot(request),
            reason=notes,
        )
        logger.info(
            "approval_resolved request_id=%s status=%s resolver_id=%s",
            request.id,
            new_status,
            resolver_id,
        )
