# gold_ledger/allocations/services.py

"""
Business logic for allocating payments against outstanding receivables.

The engine walks an ordered list of target receivables produced by a strategy
(FIFO by default, or receivables picked by hand with per-receivable caps),
applies as much of the payment as each one takes, and turns any remainder into
a credit balance. Previews run the exact same distribution without writing.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from fastapi import Depends

from gold_ledger.core.db import utcnow
from gold_ledger.utils.logger import get_logger
from gold_ledger.allocations.schemas import (
    AllocationLine, AllocationPreview, AllocationResult, ReceivableSelection,
)
from gold_ledger.ledger.exceptions import (
    AlreadySettledException, InvalidAmountException, NotFoundException,
    PaymentAlreadyAllocatedException,
)
from gold_ledger.ledger.models import (
    Alliance, CreditBalance, CreditState, LedgerEntryKind, PaymentEvent,
    Receivable, ReceivableState,
)
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.schemas import CreditBalanceResponse
from gold_ledger.ledger.services import post_receivable_reduction
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.ledger.utils import ZERO, parse_positive_amount, quantize_amount

logger = get_logger(__name__)

# (receivable, cap) pairs in the order they should be paid; None means uncapped
AllocationTargets = List[Tuple[Receivable, Optional[Decimal]]]


# === Strategies ===

class AllocationStrategy(Protocol):
    name: str

    async def targets(self, repo: LedgerRepository, alliance_id: int) -> AllocationTargets:
        ...


class FifoStrategy:
    """Oldest PENDING receivable first"""
    name = "FIFO"

    async def targets(self, repo: LedgerRepository, alliance_id: int) -> AllocationTargets:
        receivables = await repo.get_pending_receivables(alliance_id)
        return [(receivable, None) for receivable in receivables]


class SelectedReceivablesStrategy:
    """
    Receivables picked by the operator, paid in the given order.

    Each selection is capped: a receivable receives at most its max_amount,
    its remaining balance, or what is left of the payment.
    """
    name = "SELECTED"

    def __init__(self, selections: Sequence[ReceivableSelection]):
        self.selections = list(selections)

    async def targets(self, repo: LedgerRepository, alliance_id: int) -> AllocationTargets:
        targets: AllocationTargets = []
        for selection in self.selections:
            cap = parse_positive_amount(selection.max_amount)
            receivable = await repo.get_receivable(selection.receivable_id)
            if not receivable or receivable.alliance_id != alliance_id:
                raise NotFoundException("Receivable", selection.receivable_id)
            if receivable.state != ReceivableState.PENDING.value:
                raise AlreadySettledException(receivable.id)
            targets.append((receivable, cap))
        return targets


def build_strategy(selections: Optional[Sequence[ReceivableSelection]]) -> AllocationStrategy:
    if selections:
        return SelectedReceivablesStrategy(selections)
    return FifoStrategy()


# === Distribution ===

@dataclass
class PlannedApplication:
    receivable: Receivable
    balance_before: Decimal
    amount: Decimal
    balance_after: Decimal

    @property
    def settled(self) -> bool:
        return self.balance_after <= ZERO

    def to_line(self) -> AllocationLine:
        return AllocationLine(
            receivable_id=self.receivable.id,
            correlative=self.receivable.correlative,
            balance_before=self.balance_before,
            amount_applied=self.amount,
            balance_after=self.balance_after,
            settled=self.settled,
        )


def distribute(targets: AllocationTargets, amount: Decimal) -> Tuple[List[PlannedApplication], Decimal]:
    """
    Split an amount over ordered targets without touching them.

    Returns the planned applications and the unapplied remainder.
    """
    balances: Dict[int, Decimal] = {}
    plan: List[PlannedApplication] = []
    remaining = amount

    for receivable, cap in targets:
        if remaining <= ZERO:
            break
        balance = balances.get(receivable.id, receivable.remaining_balance)
        if receivable.state != ReceivableState.PENDING.value or balance <= ZERO:
            continue

        applied = min(remaining, balance)
        if cap is not None:
            applied = min(applied, cap)
        if applied <= ZERO:
            continue

        balance_after = quantize_amount(balance - applied)
        plan.append(PlannedApplication(receivable, balance, applied, balance_after))
        balances[receivable.id] = balance_after
        remaining = quantize_amount(remaining - applied)

    return plan, remaining


def get_allocation_engine(store: LedgerStore = Depends(get_ledger_store)) -> "AllocationEngine":
    """Dependency to get AllocationEngine instance."""
    return AllocationEngine(store)


class AllocationEngine:
    """
    Applies payment events to an alliance's outstanding receivables.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    async def allocate_payment(
        self,
        alliance_id: int,
        payment_event_id: int,
        amount: Any,
        strategy: Optional[AllocationStrategy] = None,
    ) -> AllocationResult:
        """
        Allocate a registered payment event.

        Every allocation record, balance change, ledger entry and the overflow
        credit commit in one transaction serialized on the alliance.
        """
        payment_amount = parse_positive_amount(amount)
        strategy = strategy or FifoStrategy()

        async def work(repo: LedgerRepository) -> AllocationResult:
            payment_event = await repo.get_payment_event(payment_event_id)
            if not payment_event or payment_event.alliance_id != alliance_id:
                raise NotFoundException("PaymentEvent", payment_event_id)
            if payment_event.allocated_on is not None:
                raise PaymentAlreadyAllocatedException(payment_event_id)
            if payment_amount > payment_event.gross_amount:
                raise InvalidAmountException(
                    payment_amount,
                    f"Amount exceeds the payment event gross amount {payment_event.gross_amount}",
                )

            alliance = await repo.get_alliance(alliance_id)
            return await self.apply_within(repo, alliance, payment_event, payment_amount, strategy)

        result = await self.store.run_in_transaction(work, alliance_id=alliance_id)
        logger.info(
            "Allocated payment event",
            alliance_id=alliance_id,
            payment_event_id=payment_event_id,
            strategy=strategy.name,
            applied_total=str(result.applied_total),
            settled_count=result.settled_count,
            overflow_credit_id=result.overflow_credit.id if result.overflow_credit else None,
        )
        return result

    async def apply_within(
        self,
        repo: LedgerRepository,
        alliance: Alliance,
        payment_event: PaymentEvent,
        amount: Decimal,
        strategy: AllocationStrategy,
    ) -> AllocationResult:
        """
        Allocate inside a transaction the caller already holds on the alliance.
        """
        targets = await strategy.targets(repo, alliance.id)
        plan, remaining = distribute(targets, amount)

        for step in plan:
            await repo.create_allocation_record(
                payment_event_id=payment_event.id,
                receivable_id=step.receivable.id,
                amount_applied=step.amount,
            )
            await post_receivable_reduction(
                repo, alliance, step.receivable, step.amount,
                kind=LedgerEntryKind.PAYMENT_APPLIED,
                description=(
                    f"Payment {payment_event.nomenclature} applied to "
                    f"receivable {step.receivable.correlative}"
                ),
                payment_event_id=payment_event.id,
            )

        overflow_credit = None
        if remaining > ZERO:
            overflow_credit = await self._generate_credit(repo, alliance, payment_event, remaining)

        payment_event.allocated_on = utcnow()
        await repo.flush()

        return AllocationResult(
            alliance_id=alliance.id,
            payment_event_id=payment_event.id,
            payment_amount=amount,
            applied_total=quantize_amount(amount - remaining),
            allocations=[step.to_line() for step in plan],
            overflow_credit=(
                CreditBalanceResponse.model_validate(overflow_credit) if overflow_credit else None
            ),
            settled_count=sum(1 for step in plan if step.settled),
        )

    async def _generate_credit(
        self, repo: LedgerRepository, alliance: Alliance,
        payment_event: PaymentEvent, amount: Decimal,
    ) -> CreditBalance:
        """Hold the unapplied remainder of a payment; debt is left untouched"""
        credit = await repo.create_credit_balance(
            CreditBalance(
                alliance_id=alliance.id,
                payment_event_id=payment_event.id,
                original_amount=amount,
                available_amount=amount,
                state=CreditState.AVAILABLE.value,
                description=f"Overflow of payment {payment_event.nomenclature}",
            )
        )
        await repo.add_ledger_entry(
            alliance_id=alliance.id,
            kind=LedgerEntryKind.CREDIT_GENERATED,
            amount=amount,
            balance_before=alliance.debt_balance,
            balance_after=alliance.debt_balance,
            description=f"Credit of {amount} g generated by payment {payment_event.nomenclature}",
            credit_balance_id=credit.id,
            payment_event_id=payment_event.id,
        )
        return credit

    # === Preview ===

    async def preview_allocation(
        self,
        alliance_id: int,
        amount: Any,
        strategy: Optional[AllocationStrategy] = None,
    ) -> AllocationPreview:
        """Simulate an allocation against current balances; nothing is written"""
        payment_amount = parse_positive_amount(amount)
        strategy = strategy or FifoStrategy()

        async with self.store.reader() as repo:
            if not await repo.get_alliance(alliance_id):
                raise NotFoundException("Alliance", alliance_id)
            targets = await strategy.targets(repo, alliance_id)
            plan, remaining = distribute(targets, payment_amount)

            return AllocationPreview(
                alliance_id=alliance_id,
                amount=payment_amount,
                applied_total=quantize_amount(payment_amount - remaining),
                overflow=remaining,
                allocations=[step.to_line() for step in plan],
                settled_count=sum(1 for step in plan if step.settled),
            )
