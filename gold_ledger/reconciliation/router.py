# gold_ledger/reconciliation/router.py

from typing import Optional

from fastapi import APIRouter, Depends, Query

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception
from gold_ledger.reconciliation.schemas import ReconciliationResult
from gold_ledger.reconciliation.services import ReconciliationService, get_reconciliation_service

logger = get_logger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["Reconciliation"])


@router.post("", response_model=ReconciliationResult)
async def reconcile(
    alliance_id: Optional[int] = Query(None, description="Reconcile every alliance when omitted"),
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Recompute cached alliance debt from pending receivables"""
    try:
        logger.info("Running reconciliation", alliance_id=alliance_id)
        return await reconciliation_service.reconcile(alliance_id)
    except LedgerBaseException as e:
        logger.warning("Reconciliation rejected", alliance_id=alliance_id, error=e.message)
        raise to_http_exception(e) from e
