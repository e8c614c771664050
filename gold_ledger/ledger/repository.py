# gold_ledger/ledger/repository.py

"""
Repository layer for the debt ledger.
Handles all database operations for alliances, receivables, payment events,
allocation records, credit balances, credit applications and ledger entries.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, desc, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.models import (
    Alliance, AllocationRecord, CreditApplication, CreditBalance, CreditState,
    LedgerEntry, LedgerEntryKind, PaymentEvent, Receivable, ReceivableState,
)

logger = get_logger(__name__)

AVAILABLE_CREDIT_STATES = (CreditState.AVAILABLE.value, CreditState.PARTIALLY_USED.value)


class LedgerRepository:
    """
    Repository for ledger database operations.
    Bound to one session; the ledger store owns the transaction around it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def flush(self) -> None:
        await self.db.flush()

    # === Alliance Operations ===

    async def create_alliance(self, alliance: Alliance) -> Alliance:
        """Create a new alliance"""
        self.db.add(alliance)
        await self.db.flush()
        await self.db.refresh(alliance)
        logger.info("Created alliance", alliance_id=alliance.id, rif=alliance.rif)
        return alliance

    async def get_alliance(self, alliance_id: int) -> Optional[Alliance]:
        """Get alliance by primary key"""
        stmt = select(Alliance).where(Alliance.id == alliance_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_alliance_by_rif(self, rif: str) -> Optional[Alliance]:
        stmt = select(Alliance).where(Alliance.rif == rif)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_alliance(self, alliance_id: int) -> Optional[Alliance]:
        """Load an alliance with a row lock held until the transaction ends"""
        stmt = (
            select(Alliance)
            .where(Alliance.id == alliance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_alliance_ids(self) -> List[int]:
        result = await self.db.execute(select(Alliance.id).order_by(Alliance.id))
        return list(result.scalars().all())

    # === Receivable Operations ===

    async def create_receivable(self, receivable: Receivable) -> Receivable:
        """Create a new receivable"""
        logger.debug("Creating receivable", correlative=receivable.correlative)
        self.db.add(receivable)
        await self.db.flush()
        await self.db.refresh(receivable)
        logger.info("Created receivable", receivable_id=receivable.id)
        return receivable

    async def get_receivable(self, receivable_id: int) -> Optional[Receivable]:
        """Get receivable by primary key"""
        stmt = select(Receivable).where(Receivable.id == receivable_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_receivable_by_smelting_record(self, smelting_record_id: int) -> Optional[Receivable]:
        stmt = select(Receivable).where(Receivable.smelting_record_id == smelting_record_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_pending_receivables(self, alliance_id: int) -> List[Receivable]:
        """PENDING receivables of an alliance, oldest first"""
        stmt = (
            select(Receivable)
            .where(
                and_(
                    Receivable.alliance_id == alliance_id,
                    Receivable.state == ReceivableState.PENDING.value,
                )
            )
            .order_by(Receivable.created_on, Receivable.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def sum_pending_balance(self, alliance_id: int) -> Decimal:
        """Sum of remaining balances over PENDING receivables"""
        stmt = select(func.sum(Receivable.remaining_balance)).where(
            and_(
                Receivable.alliance_id == alliance_id,
                Receivable.state == ReceivableState.PENDING.value,
            )
        )
        result = await self.db.execute(stmt)
        total = result.scalar()
        return Decimal(str(total)) if total is not None else Decimal("0.00")

    # === Payment Event Operations ===

    async def create_payment_event(self, payment_event: PaymentEvent) -> PaymentEvent:
        """Create a new payment event"""
        self.db.add(payment_event)
        await self.db.flush()
        await self.db.refresh(payment_event)
        logger.info(
            "Created payment event",
            payment_event_id=payment_event.id,
            nomenclature=payment_event.nomenclature,
        )
        return payment_event

    async def get_payment_event(self, payment_event_id: int) -> Optional[PaymentEvent]:
        stmt = select(PaymentEvent).where(PaymentEvent.id == payment_event_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_payment_event_by_nomenclature(self, nomenclature: str) -> Optional[PaymentEvent]:
        stmt = select(PaymentEvent).where(PaymentEvent.nomenclature == nomenclature)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def count_payment_events(self, alliance_id: int, delivered_on: date) -> int:
        """Payment events of an alliance delivered in the same month"""
        stmt = select(func.count(PaymentEvent.id)).where(
            and_(
                PaymentEvent.alliance_id == alliance_id,
                extract("year", PaymentEvent.delivered_on) == delivered_on.year,
                extract("month", PaymentEvent.delivered_on) == delivered_on.month,
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    # === Allocation Record Operations ===

    async def create_allocation_record(
        self, payment_event_id: int, receivable_id: int, amount_applied: Decimal
    ) -> AllocationRecord:
        record = AllocationRecord(
            payment_event_id=payment_event_id,
            receivable_id=receivable_id,
            amount_applied=amount_applied,
        )
        self.db.add(record)
        await self.db.flush()
        return record

    async def get_allocations_for_receivable(self, receivable_id: int) -> List[AllocationRecord]:
        stmt = (
            select(AllocationRecord)
            .where(AllocationRecord.receivable_id == receivable_id)
            .order_by(AllocationRecord.created_on, AllocationRecord.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_allocations_for_payment_event(self, payment_event_id: int) -> List[AllocationRecord]:
        stmt = (
            select(AllocationRecord)
            .where(AllocationRecord.payment_event_id == payment_event_id)
            .order_by(AllocationRecord.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # === Credit Balance Operations ===

    async def create_credit_balance(self, credit: CreditBalance) -> CreditBalance:
        """Create a new credit balance"""
        self.db.add(credit)
        await self.db.flush()
        await self.db.refresh(credit)
        logger.info(
            "Created credit balance",
            credit_balance_id=credit.id,
            amount=str(credit.original_amount),
        )
        return credit

    async def get_credit_balance(self, credit_balance_id: int) -> Optional[CreditBalance]:
        stmt = select(CreditBalance).where(CreditBalance.id == credit_balance_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_available_credits(self, alliance_id: int) -> List[CreditBalance]:
        """Usable credit balances of an alliance, oldest first"""
        stmt = (
            select(CreditBalance)
            .where(
                and_(
                    CreditBalance.alliance_id == alliance_id,
                    CreditBalance.state.in_(AVAILABLE_CREDIT_STATES),
                    CreditBalance.available_amount > 0,
                )
            )
            .order_by(CreditBalance.created_on, CreditBalance.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_credits_for_payment_event(self, payment_event_id: int) -> List[CreditBalance]:
        stmt = select(CreditBalance).where(CreditBalance.payment_event_id == payment_event_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # === Credit Application Operations ===

    async def create_credit_application(
        self, credit_balance_id: int, receivable_id: int,
        amount_applied: Decimal, description: Optional[str] = None
    ) -> CreditApplication:
        application = CreditApplication(
            credit_balance_id=credit_balance_id,
            receivable_id=receivable_id,
            amount_applied=amount_applied,
            description=description,
        )
        self.db.add(application)
        await self.db.flush()
        return application

    async def get_credit_applications_for_receivable(self, receivable_id: int) -> List[CreditApplication]:
        stmt = (
            select(CreditApplication)
            .where(CreditApplication.receivable_id == receivable_id)
            .order_by(CreditApplication.created_on, CreditApplication.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # === Ledger Entry Operations ===

    async def add_ledger_entry(
        self, alliance_id: int, kind: LedgerEntryKind, amount: Decimal,
        balance_before: Decimal, balance_after: Decimal, description: str,
        receivable_id: Optional[int] = None, credit_balance_id: Optional[int] = None,
        payment_event_id: Optional[int] = None,
    ) -> LedgerEntry:
        """Append an immutable ledger entry"""
        entry = LedgerEntry(
            alliance_id=alliance_id,
            receivable_id=receivable_id,
            credit_balance_id=credit_balance_id,
            payment_event_id=payment_event_id,
            kind=kind.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()
        logger.debug("Appended ledger entry", kind=kind.value, amount=str(amount))
        return entry

    async def get_ledger_entries(self, alliance_id: int, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Ledger entries of an alliance, newest first"""
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.alliance_id == alliance_id)
            .order_by(desc(LedgerEntry.created_on), desc(LedgerEntry.id))
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_ledger_entries(self, alliance_id: Optional[int] = None) -> int:
        stmt = select(func.count(LedgerEntry.id))
        if alliance_id is not None:
            stmt = stmt.where(LedgerEntry.alliance_id == alliance_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0
