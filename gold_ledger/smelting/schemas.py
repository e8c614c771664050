# gold_ledger/smelting/schemas.py

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class SmeltingRecordCreate(BaseModel):
    """Schema for registering a finalized smelting record"""
    record_number: str = Field(..., min_length=1, max_length=64)
    alliance_id: int
    smelted_on: Optional[date] = None
    observations: Optional[str] = None
    bar_gross_weights: List[Decimal] = Field(..., min_length=1, description="Gross weight of each bar in grams")


class SmeltingRecordResponse(BaseModel):
    id: int
    record_number: str
    alliance_id: int
    bar_count: int
    gross_total: Decimal
