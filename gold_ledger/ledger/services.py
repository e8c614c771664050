# gold_ledger/ledger/services.py

"""
Service layer for the debt ledger.

Holds the posting primitives every mutating component goes through (debit an
alliance for a new receivable, reduce a receivable and the alliance debt) and
the read-only queries over alliances, credits and ledger history.
"""

from decimal import Decimal
from typing import Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError

from gold_ledger.core.config import settings
from gold_ledger.core.db import utcnow
from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import DuplicateAllianceException, NotFoundException
from gold_ledger.ledger.models import (
    Alliance, LedgerEntry, LedgerEntryKind, Receivable, ReceivableState,
)
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.schemas import (
    AllianceBalanceSummary, AllianceCreate, AllianceResponse,
    AllocationRecordResponse, AvailableCreditsResponse, CreditApplicationResponse,
    CreditBalanceResponse, LedgerEntryResponse, ReceivablePaymentsResponse,
    ReceivableResponse,
)
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.ledger.utils import ZERO, floor_at_zero, quantize_amount

logger = get_logger(__name__)


# === Posting Primitives ===

async def post_receivable_created(
    repo: LedgerRepository, alliance: Alliance, receivable: Receivable
) -> LedgerEntry:
    """Increase the alliance debt by a new receivable's total"""
    balance_before = alliance.debt_balance
    balance_after = quantize_amount(balance_before + receivable.total_amount)
    alliance.debt_balance = balance_after

    return await repo.add_ledger_entry(
        alliance_id=alliance.id,
        kind=LedgerEntryKind.RECEIVABLE_CREATED,
        amount=receivable.total_amount,
        balance_before=balance_before,
        balance_after=balance_after,
        description=f"Receivable {receivable.correlative} created",
        receivable_id=receivable.id,
    )


async def post_receivable_reduction(
    repo: LedgerRepository,
    alliance: Alliance,
    receivable: Receivable,
    amount: Decimal,
    kind: LedgerEntryKind,
    description: str,
    credit_balance_id: Optional[int] = None,
    payment_event_id: Optional[int] = None,
) -> LedgerEntry:
    """
    Reduce a receivable and the alliance debt by the same amount.

    The receivable settles when its remaining balance reaches zero. The
    alliance debt never goes below zero; hitting the floor means the cached
    balance had drifted from its receivables.
    """
    remaining = quantize_amount(receivable.remaining_balance - amount)
    receivable.remaining_balance = floor_at_zero(remaining)
    if remaining <= ZERO:
        receivable.state = ReceivableState.SETTLED.value
        receivable.settled_on = utcnow()

    balance_before = alliance.debt_balance
    unfloored = quantize_amount(balance_before - amount)
    balance_after = floor_at_zero(unfloored)
    if unfloored < ZERO:
        logger.warning(
            "Alliance debt floored at zero",
            alliance_id=alliance.id,
            balance_before=str(balance_before),
            amount=str(amount),
        )
    alliance.debt_balance = balance_after

    return await repo.add_ledger_entry(
        alliance_id=alliance.id,
        kind=kind,
        amount=-amount,
        balance_before=balance_before,
        balance_after=balance_after,
        description=description,
        receivable_id=receivable.id,
        credit_balance_id=credit_balance_id,
        payment_event_id=payment_event_id,
    )


def get_ledger_service(store: LedgerStore = Depends(get_ledger_store)) -> "LedgerService":
    """Dependency to get LedgerService instance."""
    return LedgerService(store)


class LedgerService:
    """
    Alliance directory and read-only ledger queries.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    # === Alliance Directory ===

    async def register_alliance(self, alliance_data: AllianceCreate) -> AllianceResponse:
        """Register an alliance with no debt"""

        async def work(repo: LedgerRepository) -> AllianceResponse:
            if await repo.get_alliance_by_rif(alliance_data.rif):
                raise DuplicateAllianceException(alliance_data.rif)
            try:
                alliance = await repo.create_alliance(
                    Alliance(
                        name=alliance_data.name,
                        rif=alliance_data.rif,
                        legal_representative=alliance_data.legal_representative,
                        debt_balance=ZERO,
                    )
                )
            except IntegrityError as e:
                # another registration took the RIF after the check above
                raise DuplicateAllianceException(alliance_data.rif) from e
            return AllianceResponse.model_validate(alliance)

        result = await self.store.run_in_transaction(work)
        logger.info("Registered alliance", alliance_id=result.id, rif=result.rif)
        return result

    async def get_alliance(self, alliance_id: int) -> AllianceResponse:
        async with self.store.reader() as repo:
            alliance = await repo.get_alliance(alliance_id)
            if not alliance:
                raise NotFoundException("Alliance", alliance_id)
            return AllianceResponse.model_validate(alliance)

    # === Queries ===

    async def get_alliance_balance(
        self, alliance_id: int, recent_limit: Optional[int] = None
    ) -> AllianceBalanceSummary:
        """
        Debt position of an alliance: cached debt, pending receivables (oldest
        first), usable credits and the most recent ledger entries.
        """
        limit = recent_limit or settings.recent_ledger_entries_limit
        async with self.store.reader() as repo:
            alliance = await repo.get_alliance(alliance_id)
            if not alliance:
                raise NotFoundException("Alliance", alliance_id)

            receivables = await repo.get_pending_receivables(alliance_id)
            credits = await repo.get_available_credits(alliance_id)
            entries = await repo.get_ledger_entries(alliance_id, limit=limit)

            return AllianceBalanceSummary(
                alliance_id=alliance.id,
                name=alliance.name,
                rif=alliance.rif,
                debt_balance=alliance.debt_balance,
                total_available_credit=sum((c.available_amount for c in credits), ZERO),
                pending_receivables=[ReceivableResponse.model_validate(r) for r in receivables],
                available_credits=[CreditBalanceResponse.model_validate(c) for c in credits],
                recent_ledger_entries=[LedgerEntryResponse.model_validate(e) for e in entries],
            )

    async def list_ledger_entries(self, alliance_id: int, limit: Optional[int] = None):
        """Ledger history of an alliance, newest first"""
        async with self.store.reader() as repo:
            if not await repo.get_alliance(alliance_id):
                raise NotFoundException("Alliance", alliance_id)
            entries = await repo.get_ledger_entries(alliance_id, limit=limit)
            return [LedgerEntryResponse.model_validate(e) for e in entries]

    async def list_available_credits(self, alliance_id: int) -> AvailableCreditsResponse:
        async with self.store.reader() as repo:
            if not await repo.get_alliance(alliance_id):
                raise NotFoundException("Alliance", alliance_id)
            credits = await repo.get_available_credits(alliance_id)
            return AvailableCreditsResponse(
                alliance_id=alliance_id,
                total_available=sum((c.available_amount for c in credits), ZERO),
                count=len(credits),
                credits=[CreditBalanceResponse.model_validate(c) for c in credits],
            )

    async def get_receivable(self, receivable_id: int) -> ReceivableResponse:
        async with self.store.reader() as repo:
            receivable = await repo.get_receivable(receivable_id)
            if not receivable:
                raise NotFoundException("Receivable", receivable_id)
            return ReceivableResponse.model_validate(receivable)

    async def get_receivable_payments(self, receivable_id: int) -> ReceivablePaymentsResponse:
        """Allocation records and credit applications that reduced a receivable"""
        async with self.store.reader() as repo:
            receivable = await repo.get_receivable(receivable_id)
            if not receivable:
                raise NotFoundException("Receivable", receivable_id)

            allocations = await repo.get_allocations_for_receivable(receivable_id)
            applications = await repo.get_credit_applications_for_receivable(receivable_id)
            total_paid = sum((a.amount_applied for a in allocations), ZERO) + sum(
                (c.amount_applied for c in applications), ZERO
            )

            return ReceivablePaymentsResponse(
                receivable=ReceivableResponse.model_validate(receivable),
                allocations=[AllocationRecordResponse.model_validate(a) for a in allocations],
                credit_applications=[CreditApplicationResponse.model_validate(c) for c in applications],
                total_paid=total_paid,
            )
