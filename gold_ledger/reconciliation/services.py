# gold_ledger/reconciliation/services.py

"""
Reconciliation of cached alliance debt against outstanding receivables.

A tool of last resort for drift introduced outside the ledger operations
(manual data fixes). Corrections are logged and reported, never silent.
"""

from typing import List, Optional

from fastapi import Depends

from gold_ledger.core.db import utcnow
from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import NotFoundException
from gold_ledger.ledger.models import ReceivableState
from gold_ledger.ledger.repository import LedgerRepository
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.ledger.utils import ZERO, quantize_amount
from gold_ledger.reconciliation.schemas import AllianceCorrection, ReconciliationResult

logger = get_logger(__name__)


def get_reconciliation_service(store: LedgerStore = Depends(get_ledger_store)) -> "ReconciliationService":
    """Dependency to get ReconciliationService instance."""
    return ReconciliationService(store)


class ReconciliationService:

    def __init__(self, store: LedgerStore):
        self.store = store

    async def reconcile(self, alliance_id: Optional[int] = None) -> ReconciliationResult:
        """
        Reconcile one alliance, or every alliance when none is given.

        Each alliance is handled in its own transaction under the alliance lock.
        """
        if alliance_id is not None:
            alliance_ids = [alliance_id]
        else:
            async with self.store.reader() as repo:
                alliance_ids = await repo.list_alliance_ids()

        corrections: List[AllianceCorrection] = []
        settled_ids: List[int] = []

        for current_id in alliance_ids:
            correction, settled = await self.store.run_in_transaction(
                lambda repo, current_id=current_id: self._reconcile_alliance(repo, current_id),
                alliance_id=current_id,
            )
            if correction:
                corrections.append(correction)
            settled_ids.extend(settled)

        logger.info(
            "Reconciliation finished",
            checked_count=len(alliance_ids),
            corrected_count=len(corrections),
            settled_count=len(settled_ids),
        )
        return ReconciliationResult(
            checked_count=len(alliance_ids),
            corrected_alliances=corrections,
            settled_receivable_ids=settled_ids,
        )

    async def _reconcile_alliance(self, repo: LedgerRepository, alliance_id: int):
        alliance = await repo.get_alliance(alliance_id)
        if not alliance:
            raise NotFoundException("Alliance", alliance_id)

        settled_ids = []
        for receivable in await repo.get_pending_receivables(alliance_id):
            if receivable.remaining_balance <= ZERO:
                receivable.remaining_balance = ZERO
                receivable.state = ReceivableState.SETTLED.value
                receivable.settled_on = utcnow()
                settled_ids.append(receivable.id)
                logger.warning(
                    "Marked stale pending receivable as settled",
                    alliance_id=alliance_id,
                    receivable_id=receivable.id,
                )
        if settled_ids:
            await repo.flush()

        reconciled = quantize_amount(await repo.sum_pending_balance(alliance_id))
        previous = alliance.debt_balance
        if reconciled == previous:
            return None, settled_ids

        alliance.debt_balance = reconciled
        await repo.flush()
        logger.warning(
            "Corrected alliance debt balance",
            alliance_id=alliance_id,
            previous_balance=str(previous),
            reconciled_balance=str(reconciled),
        )
        return (
            AllianceCorrection(
                alliance_id=alliance_id,
                previous_balance=previous,
                reconciled_balance=reconciled,
                difference=quantize_amount(reconciled - previous),
            ),
            settled_ids,
        )
