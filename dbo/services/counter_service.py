"""Global statistic counters."""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dbo.database import transaction, upsert_statement
from dbo.models.base import CounterId
from dbo.models.counter import Counter

logger = logging.getLogger(__name__)


class CounterService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def increment(self, counter_id: CounterId) -> None:
        """Add one to ``counter_id``, creating the row on first use."""
        stmt = upsert_statement(
            self.db,
            Counter,
            {"name": counter_id.encode(), "counter": 1},
            index_elements=["name"],
            update_data={"counter": Counter.counter + 1},
        )
        async with transaction(self.db, f"{counter_id.value} counter increment"):
            await self.db.execute(stmt)

    async def get(self, counter_id: CounterId) -> int:
        stmt = select(Counter.counter).where(Counter.name == counter_id.encode())
        return (await self.db.execute(stmt)).scalar_one_or_none() or 0
