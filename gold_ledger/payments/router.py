# gold_ledger/payments/router.py

"""
FastAPI router for payment events ("actas de arrime").
"""

from fastapi import APIRouter, Depends, status

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception
from gold_ledger.payments.schemas import PaymentEventCreate, PaymentIntakeResult
from gold_ledger.payments.services import PaymentIntakeService, get_payment_intake_service

logger = get_logger(__name__)

router = APIRouter(prefix="/payment-events", tags=["Payment Events"])


@router.post("", response_model=PaymentIntakeResult, status_code=status.HTTP_201_CREATED)
async def register_payment_event(
    payment_data: PaymentEventCreate,
    intake_service: PaymentIntakeService = Depends(get_payment_intake_service),
):
    """
    Register a gold delivery and allocate it in the same transaction.
    """
    try:
        logger.info(
            "Registering payment event",
            alliance_id=payment_data.alliance_id,
            gross_amount=str(payment_data.gross_amount),
        )
        return await intake_service.register_payment_event(payment_data)
    except LedgerBaseException as e:
        logger.warning(
            "Payment event rejected",
            alliance_id=payment_data.alliance_id,
            error=e.message,
        )
        raise to_http_exception(e) from e
