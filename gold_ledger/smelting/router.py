# gold_ledger/smelting/router.py

"""
FastAPI router for the smelting collaborator side.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception
from gold_ledger.ledger.services import LedgerService, get_ledger_service
from gold_ledger.ledger.store import LedgerStore, get_ledger_store
from gold_ledger.smelting.provider import SqlSmeltingRecordProvider
from gold_ledger.smelting.schemas import SmeltingRecordCreate, SmeltingRecordResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/smelting-records", tags=["Smelting Records"])


@router.post("", response_model=SmeltingRecordResponse, status_code=status.HTTP_201_CREATED)
async def register_smelting_record(
    record_data: SmeltingRecordCreate,
    ledger_service: LedgerService = Depends(get_ledger_service),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Register a smelting record and its bars"""
    try:
        await ledger_service.get_alliance(record_data.alliance_id)
        snapshot = await SqlSmeltingRecordProvider(store.session_factory).register_record(
            record_number=record_data.record_number,
            alliance_id=record_data.alliance_id,
            bar_gross_weights=record_data.bar_gross_weights,
            smelted_on=record_data.smelted_on,
            observations=record_data.observations,
        )
        return SmeltingRecordResponse(
            id=snapshot.id,
            record_number=snapshot.record_number,
            alliance_id=snapshot.alliance_id,
            bar_count=len(snapshot.bar_gross_weights),
            gross_total=snapshot.gross_total,
        )
    except LedgerBaseException as e:
        logger.warning("Smelting record rejected", error=e.message)
        raise to_http_exception(e) from e
    except IntegrityError as e:
        logger.warning("Duplicate smelting record", record_number=record_data.record_number)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": f"Smelting record already exists: {record_data.record_number}"}
        ) from e
