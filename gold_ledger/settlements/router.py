# gold_ledger/settlements/router.py

from fastapi import APIRouter, Depends

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception
from gold_ledger.ledger.schemas import ReceivableResponse
from gold_ledger.settlements.services import SettlementService, get_settlement_service

logger = get_logger(__name__)

router = APIRouter(prefix="/receivables", tags=["Settlements"])


@router.post("/{receivable_id}/settle", response_model=ReceivableResponse)
async def settle_receivable(
    receivable_id: int,
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    """
    Write off what is left of a receivable and mark it SETTLED.

    Fails with 409 when the receivable is already settled.
    """
    try:
        return await settlement_service.settle_receivable(receivable_id)
    except LedgerBaseException as e:
        logger.warning("Settlement rejected", receivable_id=receivable_id, error=e.message)
        raise to_http_exception(e) from e
