# gold_ledger/allocations/schemas.py

"""
Pydantic schemas for payment allocation.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from gold_ledger.ledger.schemas import CreditBalanceResponse


# === Request Schemas ===

class ReceivableSelection(BaseModel):
    """Receivable chosen by hand, with the most it may receive"""
    receivable_id: int
    max_amount: Decimal = Field(..., description="Cap for this receivable in grams")


class AllocationRequest(BaseModel):
    """Schema for allocating a registered payment event"""
    alliance_id: int
    payment_event_id: int
    amount: Decimal
    selections: Optional[List[ReceivableSelection]] = Field(
        None, description="Allocate to these receivables in order instead of FIFO"
    )


class AllocationPreviewRequest(BaseModel):
    alliance_id: int
    amount: Decimal
    selections: Optional[List[ReceivableSelection]] = None


# === Result Schemas ===

class AllocationLine(BaseModel):
    """Result for individual allocation"""
    receivable_id: int
    correlative: str
    balance_before: Decimal
    amount_applied: Decimal
    balance_after: Decimal
    settled: bool


class AllocationPreview(BaseModel):
    """Simulated allocation; nothing is persisted"""
    alliance_id: int
    amount: Decimal
    applied_total: Decimal
    overflow: Decimal
    allocations: List[AllocationLine] = []
    settled_count: int = 0


class AllocationResult(BaseModel):
    """Outcome of a committed allocation"""
    alliance_id: int
    payment_event_id: int
    payment_amount: Decimal
    applied_total: Decimal
    allocations: List[AllocationLine] = []
    overflow_credit: Optional[CreditBalanceResponse] = None
    settled_count: int = 0
