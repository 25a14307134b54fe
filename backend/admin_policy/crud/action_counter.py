import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConfigurationError
from ..models.action_counter import ActionCounter
from ..models.base import utcnow

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ActionCounterRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def increment(
        self,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        day: date,
    ) -> int:
        """Atomically add one to the day's counter and return the new value.

        A single INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement, so
        concurrent callers always observe distinct values.
        """
        dialect = self.session.get_bind().dialect.name
        try:
            insert = _UPSERT_INSERTS[dialect]
        except KeyError as exc:
            raise ConfigurationError(
                f"Atomic counters are not supported on '{dialect}'",
                details={"dialect": dialect},
            ) from exc

        now = utcnow()
        stmt = insert(ActionCounter).values(
            id=uuid.uuid4(),
            admin_id=admin_id,
            resource_code=resource_code,
            action_code=action_code,
            day=day,
            action_count=1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["admin_id", "resource_code", "action_code", "day"],
            set_={
                "action_count": ActionCounter.action_count + 1,
                "updated_at": now,
            },
        ).returning(ActionCounter.action_count)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def get_count(
        self,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        day: date,
    ) -> int:
        result = await self.session.execute(
            select(ActionCounter.action_count).where(
                ActionCounter.admin_id == admin_id,
                ActionCounter.resource_code == resource_code,
                ActionCounter.action_code == action_code,
                ActionCounter.day == day,
            )
        )
        return int(result.scalar_one_or_none() or 0)
