# gold_ledger/smelting/repository.py

"""
Repository layer for smelting records.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gold_ledger.utils.logger import get_logger
from gold_ledger.smelting.models import SmeltingRecord

logger = get_logger(__name__)


class SmeltingRepository:
    """Repository for smelting records and their bars"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_record(self, record: SmeltingRecord) -> SmeltingRecord:
        self.db.add(record)
        await self.db.flush()
        await self.db.refresh(record)
        logger.info("Created smelting record", record_number=record.record_number)
        return record

    async def get_record(self, record_id: int) -> Optional[SmeltingRecord]:
        """Get smelting record with its bars"""
        stmt = select(SmeltingRecord).where(SmeltingRecord.id == record_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
