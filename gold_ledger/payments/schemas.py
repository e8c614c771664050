# gold_ledger/payments/schemas.py

"""
Pydantic schemas for payment-event intake.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from gold_ledger.allocations.schemas import AllocationResult, ReceivableSelection
from gold_ledger.ledger.schemas import PaymentEventResponse


class PaymentEventCreate(BaseModel):
    """Schema for registering a gold delivery"""
    alliance_id: int
    gross_amount: Decimal = Field(..., description="Gross weight delivered in grams")
    delivered_on: date
    pieces: Optional[int] = Field(None, ge=0)
    observations: Optional[str] = None
    nomenclature: Optional[str] = Field(
        None, max_length=96, description="Generated when omitted"
    )
    selections: Optional[List[ReceivableSelection]] = Field(
        None, description="Receivables to pay, in order; FIFO when omitted"
    )


class PaymentIntakeResult(BaseModel):
    payment_event: PaymentEventResponse
    allocation: AllocationResult
