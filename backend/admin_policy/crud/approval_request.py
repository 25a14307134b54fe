import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.approval_request import ApprovalRequest


class ApprovalRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        rule_id: uuid.UUID | None,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        context_snapshot: dict[str, Any],
        escalate_to_role_code: str | None,
        escalate_to_admin_id: uuid.UUID | None,
    ) -> ApprovalRequest:
        request = ApprovalRequest(
            rule_id=rule_id,
            admin_id=admin_id,
            resource_code=resource_code,
            action_code=action_code,
            context_snapshot=context_snapshot,
            escalate_to_role_code=escalate_to_role_code,
            escalate_to_admin_id=escalate_to_admin_id,
            status="pending",
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_by_id(self, request_id: uuid.UUID) -> ApprovalRequest | None:
        return await self.session.get(ApprovalRequest, request_id)

    async def get_for_update(self, request_id: uuid.UUID) -> ApprovalRequest | None:
        result = await self.session.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.id == request_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_pending_for(
        self, admin_id: uuid.UUID, role_codes: set[str]
    ) -> list[ApprovalRequest]:
        routed = [ApprovalRequest.escalate_to_admin_id == admin_id]
        if role_codes:
            routed.append(ApprovalRequest.escalate_to_role_code.in_(role_codes))
        result = await self.session.execute(
            select(ApprovalRequest)
            .where(ApprovalRequest.status == "pending", or_(*routed))
            .order_by(ApprovalRequest.created_at, ApprovalRequest.id)
        )
        return list(result.scalars().all())

    async def list_pending_created_before(self, cutoff: datetime) -> list[ApprovalRequest]:
        """Lock the stale pending rows; rows an approver holds are skipped."""
        result = await self.session.execute(
            select(ApprovalRequest)
            .where(
                ApprovalRequest.status == "pending",
                ApprovalRequest.created_at < cutoff,
            )
            .order_by(ApprovalRequest.created_at)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def list_by_filters(
        self,
        status: str | None = None,
        admin_id: uuid.UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ApprovalRequest]:
        query = select(ApprovalRequest)
        if status is not None:
            query = query.where(ApprovalRequest.status == status)
        if admin_id is not None:
            query = query.where(ApprovalRequest.admin_id == admin_id)
        query = query.order_by(ApprovalRequest.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update(self, request: ApprovalRequest) -> ApprovalRequest:
        await self.session.flush()
        return request
