# gold_ledger/settlements/services.py

"""
Administrative write-off of receivables.
"""

from fastapi import Depends

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import AlreadySettledException, NotFoundException
from gold_ledger.ledger.models import LedgerEntryKind, ReceivableState
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.schemas import ReceivableResponse
from gold_ledger.ledger.services import post_receivable_reduction
from gold_ledger.ledger.store import LedgerStore, get_ledger_store

logger = get_logger(__name__)


def get_settlement_service(store: LedgerStore = Depends(get_ledger_store)) -> "SettlementService":
    """Dependency to get SettlementService instance."""
    return SettlementService(store)


class SettlementService:

    def __init__(self, store: LedgerStore):
        self.store = store

    async def settle_receivable(self, receivable_id: int) -> ReceivableResponse:
        """
        Force a PENDING receivable to SETTLED, writing off what is left of it.
        """
        async with self.store.reader() as repo:
            receivable = await repo.get_receivable(receivable_id)
            if not receivable:
                raise NotFoundException("Receivable", receivable_id)
            alliance_id = receivable.alliance_id

        async def work(repo: LedgerRepository) -> ReceivableResponse:
            receivable = await repo.get_receivable(receivable_id)
            if receivable.state == ReceivableState.SETTLED.value:
                raise AlreadySettledException(receivable_id)

            alliance = await repo.get_alliance(alliance_id)
            write_off = receivable.remaining_balance
            await post_receivable_reduction(
                repo, alliance, receivable, write_off,
                kind=LedgerEntryKind.RECEIVABLE_SETTLED,
                description=f"Receivable {receivable.correlative} settled, {write_off} g written off",
            )
            await repo.flush()
            return ReceivableResponse.model_validate(receivable)

        result = await self.store.run_in_transaction(work, alliance_id=alliance_id)
        logger.info(
            "Settled receivable",
            receivable_id=receivable_id,
            alliance_id=alliance_id,
        )
        return result
