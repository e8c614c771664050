# gold_ledger/credits/schemas.py

"""
Pydantic schemas for credit balance application.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from gold_ledger.ledger.models import CreditState, ReceivableState


class CreditApplicationRequest(BaseModel):
    """Schema for applying part of a credit balance to a receivable"""
    credit_balance_id: int
    receivable_id: int
    amount: Decimal


class CreditTraceability(BaseModel):
    origin_payment_nomenclature: Optional[str] = None
    receivable_correlative: str
    alliance_name: str
    credit_alliance_name: str


class CreditApplicationResult(BaseModel):
    """Before/after state of everything a credit application touched"""
    credit_application_id: int
    credit_balance_id: int
    receivable_id: int
    alliance_id: int
    credit_alliance_id: int
    amount_applied: Decimal

    credit_available_before: Decimal
    new_credit_available: Decimal
    credit_state: CreditState

    receivable_balance_before: Decimal
    new_receivable_balance: Decimal
    receivable_state: ReceivableState
    receivable_settled: bool

    alliance_debt_before: Decimal
    alliance_debt_after: Decimal

    traceability: CreditTraceability
