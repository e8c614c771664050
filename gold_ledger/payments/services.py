# gold_ledger/payments/services.py

"""
Business logic for registering payment events ("actas de arrime").
A delivery is recorded and allocated against debt in the same transaction.
"""

from typing import Optional

from fastapi import Depends

from gold_ledger.core.config import settings
from gold_ledger.utils.logger import get_logger
from gold_ledger.allocations.services import AllocationEngine, build_strategy
from gold_ledger.ledger.exceptions import DuplicatePaymentEventException
from gold_ledger.ledger.models import PaymentEvent
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.schemas import PaymentEventResponse
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.ledger.utils import build_payment_nomenclature, parse_positive_amount
from gold_ledger.payments.schemas import PaymentEventCreate, PaymentIntakeResult

logger = get_logger(__name__)


def get_payment_intake_service(store: LedgerStore = Depends(get_ledger_store)) -> "PaymentIntakeService":
    """Dependency to get PaymentIntakeService instance."""
    return PaymentIntakeService(store)


class PaymentIntakeService:
    """
    Registers deliveries and allocates them.
    """

    def __init__(self, store: LedgerStore, nomenclature_prefix: Optional[str] = None):
        self.store = store
        self.engine = AllocationEngine(store)
        self.nomenclature_prefix = nomenclature_prefix or settings.payment_nomenclature_prefix

    async def register_payment_event(self, payment_data: PaymentEventCreate) -> PaymentIntakeResult:
        """
        Create the payment event and allocate its whole gross amount.

        Uses the selected receivables when given, FIFO otherwise. Any remainder
        becomes a credit balance linked to the new event.
        """
        gross_amount = parse_positive_amount(payment_data.gross_amount)
        strategy = build_strategy(payment_data.selections)

        async def work(repo: LedgerRepository) -> PaymentIntakeResult:
            alliance = await repo.get_alliance(payment_data.alliance_id)

            if payment_data.nomenclature:
                nomenclature = payment_data.nomenclature
                if await repo.get_payment_event_by_nomenclature(nomenclature):
                    raise DuplicatePaymentEventException(nomenclature)
            else:
                nomenclature = await self._next_nomenclature(repo, payment_data)

            payment_event = await repo.create_payment_event(
                PaymentEvent(
                    nomenclature=nomenclature,
                    alliance_id=alliance.id,
                    delivered_on=payment_data.delivered_on,
                    gross_amount=gross_amount,
                    pieces=payment_data.pieces,
                    observations=payment_data.observations,
                )
            )

            allocation = await self.engine.apply_within(
                repo, alliance, payment_event, gross_amount, strategy
            )
            return PaymentIntakeResult(
                payment_event=PaymentEventResponse.model_validate(payment_event),
                allocation=allocation,
            )

        result = await self.store.run_in_transaction(work, alliance_id=payment_data.alliance_id)
        logger.info(
            "Registered payment event",
            payment_event_id=result.payment_event.id,
            nomenclature=result.payment_event.nomenclature,
            alliance_id=payment_data.alliance_id,
            gross_amount=str(gross_amount),
            strategy=strategy.name,
            applied_total=str(result.allocation.applied_total),
        )
        return result

    async def _next_nomenclature(self, repo: LedgerRepository, payment_data: PaymentEventCreate) -> str:
        """Next free <prefix>-<alliance>-<NNNN>/<MM>/<YYYY> for the delivery month"""
        sequence = await repo.count_payment_events(payment_data.alliance_id, payment_data.delivered_on) + 1
        while True:
            nomenclature = build_payment_nomenclature(
                self.nomenclature_prefix, payment_data.alliance_id, sequence, payment_data.delivered_on
            )
            if not await repo.get_payment_event_by_nomenclature(nomenclature):
                return nomenclature
            sequence += 1
