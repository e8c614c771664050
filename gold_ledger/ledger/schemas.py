# gold_ledger/ledger/schemas.py

"""
Pydantic schemas for the debt ledger.
Serialization of ledger entities and read models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gold_ledger.ledger.models import CreditState, LedgerEntryKind, ReceivableState


# === Alliance Schemas ===

class AllianceCreate(BaseModel):
    """Schema for registering an alliance"""
    name: str = Field(..., min_length=1, max_length=255)
    rif: str = Field(..., min_length=1, max_length=32)
    legal_representative: Optional[str] = Field(None, max_length=255)


class AllianceResponse(BaseModel):
    id: int
    name: str
    rif: str
    legal_representative: Optional[str] = None
    debt_balance: Decimal
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# === Entity Schemas ===

class ReceivableResponse(BaseModel):
    """Schema for receivable response"""
    id: int
    correlative: str
    smelting_record_id: int
    alliance_id: int
    gross_weight: Decimal
    rate: Decimal
    total_amount: Decimal
    remaining_balance: Decimal
    state: ReceivableState
    settled_on: Optional[datetime] = None
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentEventResponse(BaseModel):
    id: int
    nomenclature: str
    alliance_id: int
    delivered_on: date
    gross_amount: Decimal
    pieces: Optional[int] = None
    observations: Optional[str] = None
    allocated_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreditBalanceResponse(BaseModel):
    """Schema for credit balance response"""
    id: int
    alliance_id: int
    payment_event_id: Optional[int] = None
    original_amount: Decimal
    available_amount: Decimal
    state: CreditState
    description: Optional[str] = None
    last_used_on: Optional[datetime] = None
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AllocationRecordResponse(BaseModel):
    id: int
    payment_event_id: int
    receivable_id: int
    amount_applied: Decimal
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreditApplicationResponse(BaseModel):
    id: int
    credit_balance_id: int
    receivable_id: int
    amount_applied: Decimal
    description: Optional[str] = None
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryResponse(BaseModel):
    """Schema for ledger entry response"""
    id: int
    alliance_id: int
    receivable_id: Optional[int] = None
    credit_balance_id: Optional[int] = None
    payment_event_id: Optional[int] = None
    kind: LedgerEntryKind
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: Optional[str] = None
    created_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# === Read Models ===

class AllianceBalanceSummary(BaseModel):
    """Debt position of an alliance"""
    alliance_id: int
    name: str
    rif: str
    debt_balance: Decimal
    total_available_credit: Decimal = Decimal("0.00")
    pending_receivables: List[ReceivableResponse] = []
    available_credits: List[CreditBalanceResponse] = []
    recent_ledger_entries: List[LedgerEntryResponse] = []


class AvailableCreditsResponse(BaseModel):
    alliance_id: int
    total_available: Decimal
    count: int
    credits: List[CreditBalanceResponse] = []


class ReceivablePaymentsResponse(BaseModel):
    """Everything that reduced a receivable"""
    receivable: ReceivableResponse
    allocations: List[AllocationRecordResponse] = []
    credit_applications: List[CreditApplicationResponse] = []
    total_paid: Decimal = Decimal("0.00")
