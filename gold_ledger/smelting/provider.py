# gold_ledger/smelting/provider.py

"""
Smelting record provider consumed by the receivable generator.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gold_ledger.utils.logger import get_logger
from gold_ledger.smelting.models import SmeltingBar, SmeltingRecord
from gold_ledger.smelting.repository import SmeltingRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class SmeltingRecordSnapshot:
    """What the ledger needs to know about a smelting record"""
    id: int
    record_number: str
    alliance_id: int
    bar_gross_weights: List[Decimal]

    @property
    def gross_total(self) -> Decimal:
        return sum(self.bar_gross_weights, Decimal("0"))


class SmeltingRecordProvider(Protocol):
    async def get_record(self, record_id: int) -> Optional[SmeltingRecordSnapshot]:
        ...


class SqlSmeltingRecordProvider:
    """Reads smelting records from the shared database"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_record(self, record_id: int) -> Optional[SmeltingRecordSnapshot]:
        async with self.session_factory() as session:
            record = await SmeltingRepository(session).get_record(record_id)
            if record is None:
                return None
            return SmeltingRecordSnapshot(
                id=record.id,
                record_number=record.record_number,
                alliance_id=record.alliance_id,
                bar_gross_weights=[Decimal(str(bar.gross_weight)) for bar in record.bars],
            )

    async def register_record(
        self, record_number: str, alliance_id: int, bar_gross_weights: Sequence[Decimal],
        smelted_on: Optional[date] = None, observations: Optional[str] = None,
    ) -> SmeltingRecordSnapshot:
        """Store a smelting record with one bar per gross weight"""
        async with self.session_factory() as session:
            async with session.begin():
                record = SmeltingRecord(
                    record_number=record_number,
                    alliance_id=alliance_id,
                    smelted_on=smelted_on,
                    observations=observations,
                    bars=[
                        SmeltingBar(bar_number=index, gross_weight=Decimal(str(weight)))
                        for index, weight in enumerate(bar_gross_weights, start=1)
                    ],
                )
                record = await SmeltingRepository(session).create_record(record)
                snapshot = SmeltingRecordSnapshot(
                    id=record.id,
                    record_number=record.record_number,
                    alliance_id=record.alliance_id,
                    bar_gross_weights=[Decimal(str(w)) for w in bar_gross_weights],
                )
        return snapshot
