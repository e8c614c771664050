# gold_ledger/credits/services.py

"""
Business logic for applying credit balances ("saldos a favor") to receivables.
"""

from decimal import Decimal
from typing import Any, Optional

from fastapi import Depends

from gold_ledger.core.config import settings
from gold_ledger.core.db import utcnow
from gold_ledger.utils.logger import get_logger
from gold_ledger.credits.schemas import CreditApplicationResult, CreditTraceability
from gold_ledger.ledger.exceptions import (
    AlreadySettledException, AmountExceedsAvailableException,
    AmountExceedsReceivableException, CreditExhaustedException,
    InvalidAmountException, NotFoundException,
)
from gold_ledger.ledger.models import CreditState, LedgerEntryKind, ReceivableState
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.services import post_receivable_reduction
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.ledger.utils import (
    ZERO, exceeds_with_tolerance, floor_at_zero, quantize_amount, to_decimal,
)

logger = get_logger(__name__)


def get_credit_application_service(
    store: LedgerStore = Depends(get_ledger_store),
) -> "CreditApplicationService":
    """Dependency to get CreditApplicationService instance."""
    return CreditApplicationService(store)


class CreditApplicationService:
    """
    Moves funds from a credit balance into an outstanding receivable.
    """

    def __init__(self, store: LedgerStore, tolerance: Optional[Decimal] = None):
        self.store = store
        self.tolerance = tolerance if tolerance is not None else settings.amount_tolerance

    async def apply_credit(
        self, credit_balance_id: int, receivable_id: int, amount: Any
    ) -> CreditApplicationResult:
        """
        Apply part of a credit balance to a receivable.

        Checks, in order: the credit exists, it has funds, the receivable
        exists, it is still owed, and the amount fits both balances within the
        tolerance. The applied amount is clamped to both balances so neither
        can go negative.

        The receivable may belong to another alliance than the credit. Its own
        alliance's debt is reduced and carries the CREDIT_APPLIED entry; both
        alliances are locked for the duration of the transaction.
        """
        requested = to_decimal(amount)
        if requested <= ZERO:
            raise InvalidAmountException(amount, "Amount must be greater than zero")

        async with self.store.reader() as repo:
            credit = await repo.get_credit_balance(credit_balance_id)
            if not credit:
                raise NotFoundException("CreditBalance", credit_balance_id)
            receivable = await repo.get_receivable(receivable_id)
            alliance_ids = {credit.alliance_id}
            if receivable:
                alliance_ids.add(receivable.alliance_id)

        async def work(repo: LedgerRepository) -> CreditApplicationResult:
            credit = await repo.get_credit_balance(credit_balance_id)
            if not credit:
                raise NotFoundException("CreditBalance", credit_balance_id)
            if credit.available_amount <= ZERO or credit.state == CreditState.EXHAUSTED.value:
                raise CreditExhaustedException(credit_balance_id)

            receivable = await repo.get_receivable(receivable_id)
            if not receivable or receivable.alliance_id not in alliance_ids:
                raise NotFoundException("Receivable", receivable_id)
            if receivable.remaining_balance <= ZERO or receivable.state == ReceivableState.SETTLED.value:
                raise AlreadySettledException(receivable_id)

            if exceeds_with_tolerance(requested, credit.available_amount, self.tolerance):
                raise AmountExceedsAvailableException(
                    credit_balance_id, requested, credit.available_amount
                )
            if exceeds_with_tolerance(requested, receivable.remaining_balance, self.tolerance):
                raise AmountExceedsReceivableException(
                    receivable_id, requested, receivable.remaining_balance
                )

            applied = min(
                quantize_amount(requested), credit.available_amount, receivable.remaining_balance
            )
            if applied <= ZERO:
                raise InvalidAmountException(amount, "Amount rounds to zero")

            # the debt that shrinks is the one of the receivable's owner
            alliance = await repo.get_alliance(receivable.alliance_id)
            credit_owner = (
                alliance if credit.alliance_id == alliance.id
                else await repo.get_alliance(credit.alliance_id)
            )
            payment_event = (
                await repo.get_payment_event(credit.payment_event_id)
                if credit.payment_event_id else None
            )
            origin = payment_event.nomenclature if payment_event else None

            credit_before = credit.available_amount
            receivable_before = receivable.remaining_balance
            debt_before = alliance.debt_balance

            application = await repo.create_credit_application(
                credit_balance_id=credit.id,
                receivable_id=receivable.id,
                amount_applied=applied,
                description=(
                    f"Credit ({origin or credit.id}) applied to receivable {receivable.correlative}"
                ),
            )

            credit.available_amount = floor_at_zero(quantize_amount(credit_before - applied))
            credit.state = (
                CreditState.PARTIALLY_USED.value
                if credit.available_amount > ZERO else CreditState.EXHAUSTED.value
            )
            credit.last_used_on = utcnow()

            description = (
                f"Credit ({origin or credit.id}) of {applied} g applied to "
                f"receivable {receivable.correlative}"
            )
            if credit_owner.id != alliance.id:
                description += f" on behalf of {credit_owner.name}"
            await post_receivable_reduction(
                repo, alliance, receivable, applied,
                kind=LedgerEntryKind.CREDIT_APPLIED,
                description=description,
                credit_balance_id=credit.id,
                payment_event_id=credit.payment_event_id,
            )
            await repo.flush()

            return CreditApplicationResult(
                credit_application_id=application.id,
                credit_balance_id=credit.id,
                receivable_id=receivable.id,
                alliance_id=alliance.id,
                credit_alliance_id=credit_owner.id,
                amount_applied=applied,
                credit_available_before=credit_before,
                new_credit_available=credit.available_amount,
                credit_state=credit.state,
                receivable_balance_before=receivable_before,
                new_receivable_balance=receivable.remaining_balance,
                receivable_state=receivable.state,
                receivable_settled=receivable.state == ReceivableState.SETTLED.value,
                alliance_debt_before=debt_before,
                alliance_debt_after=alliance.debt_balance,
                traceability=CreditTraceability(
                    origin_payment_nomenclature=origin,
                    receivable_correlative=receivable.correlative,
                    alliance_name=alliance.name,
                    credit_alliance_name=credit_owner.name,
                ),
            )

        result = await self.store.run_in_transaction(work, alliance_ids=alliance_ids)
        logger.info(
            "Applied credit balance",
            credit_balance_id=credit_balance_id,
            receivable_id=receivable_id,
            alliance_id=result.alliance_id,
            credit_alliance_id=result.credit_alliance_id,
            amount=str(result.amount_applied),
            credit_state=result.credit_state.value,
            receivable_settled=result.receivable_settled,
        )
        return result
