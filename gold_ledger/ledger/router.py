# gold_ledger/ledger/router.py

"""
FastAPI router for alliances and their ledger.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from gold_ledger.utils.logger import get_logger
from gold_ledger.ledger.exceptions import LedgerBaseException, to_http_exception
from gold_ledger.ledger.schemas import (
    AllianceBalanceSummary, AllianceCreate, AllianceResponse,
    AvailableCreditsResponse, LedgerEntryResponse,
)
from gold_ledger.ledger.services import LedgerService, get_ledger_service

logger = get_logger(__name__)

router = APIRouter(prefix="/alliances", tags=["Alliances"])


# === Alliance Directory ===

@router.post("", response_model=AllianceResponse, status_code=status.HTTP_201_CREATED)
async def register_alliance(
    alliance_data: AllianceCreate,
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger_service.register_alliance(alliance_data)
    except LedgerBaseException as e:
        logger.warning("Alliance registration rejected", rif=alliance_data.rif, error=e.message)
        raise to_http_exception(e) from e


@router.get("/{alliance_id}", response_model=AllianceResponse)
async def get_alliance(
    alliance_id: int,
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger_service.get_alliance(alliance_id)
    except LedgerBaseException as e:
        raise to_http_exception(e) from e


# === Ledger Queries ===

@router.get("/{alliance_id}/balance", response_model=AllianceBalanceSummary)
async def get_alliance_balance(
    alliance_id: int,
    recent: Optional[int] = Query(None, ge=1, le=500, description="Recent ledger entries to include"),
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    """
    Debt position of an alliance.

    Returns the cached debt balance, pending receivables (oldest first),
    usable credit balances and the most recent ledger entries.
    """
    try:
        return await ledger_service.get_alliance_balance(alliance_id, recent_limit=recent)
    except LedgerBaseException as e:
        raise to_http_exception(e) from e


@router.get("/{alliance_id}/ledger-entries", response_model=List[LedgerEntryResponse])
async def list_ledger_entries(
    alliance_id: int,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    """Ledger history of an alliance, newest first"""
    try:
        return await ledger_service.list_ledger_entries(alliance_id, limit=limit)
    except LedgerBaseException as e:
        raise to_http_exception(e) from e


@router.get("/{alliance_id}/credits", response_model=AvailableCreditsResponse)
async def list_available_credits(
    alliance_id: int,
    ledger_service: LedgerService = Depends(get_ledger_service),
):
    try:
        return await ledger_service.list_available_credits(alliance_id)
    except LedgerBaseException as e:
        raise to_http_exception(e) from e
