import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.escalation_rule import EscalationRule


class EscalationRuleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **values) -> EscalationRule:
        rule = EscalationRule(**values)
        self.session.add(rule)
        await self.session.flush()
        return rule

    async def get_by_id(self, rule_id: uuid.UUID) -> EscalationRule | None:
        return await self.session.get(EscalationRule, rule_id)

    async def list_all(
        self,
        resource_code: str | None = None,
        action_code: str | None = None,
        include_inactive: bool = True,
    ) -> list[EscalationRule]:
        query = select(EscalationRule)
        if resource_code is not None:
            query = query.where(EscalationRule.resource_code == resource_code)
        if action_code is not None:
            query = query.where(EscalationRule.action_code == action_code)
        if not include_inactive:
            query = query.where(EscalationRule.is_active)
        query = query.order_by(
            EscalationRule.priority, EscalationRule.created_at, EscalationRule.id
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_matching(self, resource_code: str, action_code: str) -> list[EscalationRule]:
        """Active rules for the resource/action in evaluation order."""
        return await self.list_all(
            resource_code=resource_code,
            action_code=action_code,
            include_inactive=False,
        )

    async def update(self, rule: EscalationRule) -> EscalationRule:
        await self.session.flush()
        return rule

    async def delete(self, rule: EscalationRule) -> None:
        await self.session.delete(rule)
        await self.session.flush()
