# gold_ledger/allocations/router.py

"""
FastAPI router for payment allocation.
"""

from fastapi import APIRouter, Depends

from gold_ledger.utils.logger import get_logger
from gold_ledger.allocations.schemas import (
    AllocationPreview, AllocationPreviewRequest, AllocationRequest, AllocationResult,
)
from gold_ledger.allocations.services import (
    AllocationEngine, build_strategy, get_allocation_engine,
)
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception

logger = get_logger(__name__)

router = APIRouter(prefix="/allocations", tags=["Allocations"])


@router.post("", response_model=AllocationResult)
async def allocate_payment(
    allocation_request: AllocationRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
):
    """
    Allocate a registered payment event against the alliance's debt.

    **Business Rules:**
    - Oldest pending receivables are paid first unless selections are given
    - Selected receivables are paid in the given order, each up to its cap
    - Any remainder becomes a credit balance
    - A payment event can only be allocated once
    """
    try:
        return await engine.allocate_payment(
            alliance_id=allocation_request.alliance_id,
            payment_event_id=allocation_request.payment_event_id,
            amount=allocation_request.amount,
            strategy=build_strategy(allocation_request.selections),
        )
    except LedgerBaseException as e:
        logger.warning(
            "Allocation rejected",
            alliance_id=allocation_request.alliance_id,
            payment_event_id=allocation_request.payment_event_id,
            error=e.message,
        )
        raise to_http_exception(e) from e


@router.post("/preview", response_model=AllocationPreview)
async def preview_allocation(
    preview_request: AllocationPreviewRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
):
    """Show how an amount would be allocated without changing anything"""
    try:
        return await engine.preview_allocation(
            alliance_id=preview_request.alliance_id,
            amount=preview_request.amount,
            strategy=build_strategy(preview_request.selections),
        )
    except LedgerBaseException as e:
        raise to_http_exception(e) from e
