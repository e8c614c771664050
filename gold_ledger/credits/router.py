# gold_ledger/credits/router.py

from fastapi import APIRouter, Depends

from gold_ledger.utils.logger import get_logger
from gold_ledger.credits.schemas import CreditApplicationRequest, CreditApplicationResult
from gold_ledger.credits.services import CreditApplicationService, get_credit_application_service
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception

logger = get_logger(__name__)

router = APIRouter(prefix="/credits", tags=["Credit Balances"])


@router.post("/apply", response_model=CreditApplicationResult)
async def apply_credit(
    application_request: CreditApplicationRequest,
    credit_service: CreditApplicationService = Depends(get_credit_application_service),
):
    """
    Apply part of a credit balance to a receivable.

    Amounts may exceed the available credit or the receivable balance by at
    most 0.01 g; larger excesses are rejected with the exact shortfall.
    """
    try:
        return await credit_service.apply_credit(
            credit_balance_id=application_request.credit_balance_id,
            receivable_id=application_request.receivable_id,
            amount=application_request.amount,
        )
    except LedgerBaseException as e:
        logger.warning(
            "Credit application rejected",
            credit_balance_id=application_request.credit_balance_id,
            receivable_id=application_request.receivable_id,
            error=e.message,
        )
        raise to_http_exception(e) from e
