# gold_ledger/receivables/services.py

"""
Receivable generation from finalized smelting records.
"""

from decimal import Decimal
from typing import Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError

from gold_ledger.core.config import settings
from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import (
    DuplicateReceivableException, InvalidAmountException, NotFoundException,
)
from gold_ledger.ledger.models import Receivable, ReceivableState
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.schemas import ReceivableResponse
from gold_ledger.ledger.services import post_receivable_created
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.ledger.utils import ZERO, build_receivable_correlative, quantize_amount
from gold_ledger.smelting.provider import SmeltingRecordProvider, SqlSmeltingRecordProvider

logger = get_logger(__name__)


def get_receivable_generator(store: LedgerStore = Depends(get_ledger_store)) -> "ReceivableGenerator":
    """Dependency to get ReceivableGenerator instance."""
    return ReceivableGenerator(store, SqlSmeltingRecordProvider(store.session_factory))


class ReceivableGenerator:
    """
    Creates one receivable per smelting record at the configured rate.
    """

    def __init__(
        self,
        store: LedgerStore,
        provider: SmeltingRecordProvider,
        rate: Optional[Decimal] = None,
        correlative_prefix: Optional[str] = None,
    ):
        self.store = store
        self.provider = provider
        self.rate = Decimal(str(rate)) if rate is not None else settings.receivable_rate
        self.correlative_prefix = correlative_prefix or settings.receivable_correlative_prefix

    async def create_receivable(self, smelting_record_id: int) -> ReceivableResponse:
        """
        Create the receivable of a smelting record.

        total_amount = round(sum of bar gross weights * rate, 2). The receivable,
        the alliance debt increment and the RECEIVABLE_CREATED entry commit
        together.
        """
        record = await self.provider.get_record(smelting_record_id)
        if record is None:
            raise NotFoundException("SmeltingRecord", smelting_record_id)
        if not record.bar_gross_weights:
            raise InvalidAmountException(ZERO, "Smelting record has no bars")

        gross_total = quantize_amount(record.gross_total)
        if gross_total <= ZERO:
            raise InvalidAmountException(gross_total, "Gross weight must be greater than zero")
        total_amount = quantize_amount(gross_total * self.rate)

        async def work(repo: LedgerRepository) -> ReceivableResponse:
            existing = await repo.get_receivable_by_smelting_record(record.id)
            if existing:
                raise DuplicateReceivableException(record.id, existing.id)

            alliance = await repo.get_alliance(record.alliance_id)
            try:
                receivable = await repo.create_receivable(
                    Receivable(
                        correlative=build_receivable_correlative(
                            self.correlative_prefix, record.record_number
                        ),
                        smelting_record_id=record.id,
                        alliance_id=record.alliance_id,
                        gross_weight=gross_total,
                        rate=self.rate,
                        total_amount=total_amount,
                        remaining_balance=total_amount,
                        state=ReceivableState.PENDING.value,
                    )
                )
            except IntegrityError as e:
                raise DuplicateReceivableException(record.id) from e

            await post_receivable_created(repo, alliance, receivable)
            await repo.flush()
            return ReceivableResponse.model_validate(receivable)

        result = await self.store.run_in_transaction(work, alliance_id=record.alliance_id)
        logger.info(
            "Created receivable from smelting record",
            receivable_id=result.id,
            smelting_record_id=smelting_record_id,
            alliance_id=result.alliance_id,
            total_amount=str(result.total_amount),
        )
        return result
