# gold_ledger/receivables/router.py

"""
FastAPI router for receivables ("actas de cobranza").
"""

from fastapi import APIRouter, Depends, status

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception
from gold_ledger.ledger.schemas import ReceivablePaymentsResponse, ReceivableResponse
from gold_ledger.ledger.services import LedgerService, get_ledger_service
from gold_ledger.receivables.schemas import ReceivableCreate
from gold_ledger.receivables.services import ReceivableGenerator, get_receivable_generator

logger = get_logger(__name__)

router = APIRouter(prefix="/receivables", tags=["Receivables"])


@router.post("", response_model=ReceivableResponse, status_code=status.HTTP_201_CREATED)
async def create_receivable(
    receivable_data: ReceivableCreate,
    generator: ReceivableGenerator = Depends(get_receivable_generator),
):
    """
    Generate the receivable of a finalized smelting record.

    The amount is the sum of the bar gross weights times the configured rate.
    Only one receivable may exist per smelting record.
    """
    try:
        return await generator.create_receivable(receivable_data.smelting_record_id)
    except LedgerBaseException as e:
        logger.warning(
            "Receivable creation rejected",
            smelting_record_id=receivable_data.smelting_record_id,
            error=e.message,
        )
        raise to_http_exception(e) from e


@router.get("/{receivable_id}", response_model=ReceivableResponse)
async def get_receivable(
    receivable_id: int,
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger_service.get_receivable(receivable_id)
    except LedgerBaseException as e:
        raise to_http_exception(e) from e


@router.get("/{receivable_id}/payments", response_model=ReceivablePaymentsResponse)
async def get_receivable_payments(
    receivable_id: int,
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    """Allocations and credit applications that reduced a receivable"""
    try:
        return await ledger_service.get_receivable_payments(receivable_id)
    except LedgerBaseException as e:
        raise to_http_exception(e) from e
