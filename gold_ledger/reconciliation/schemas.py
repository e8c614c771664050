# gold_ledger/reconciliation/schemas.py

from decimal import Decimal
from typing import List

from pydantic import BaseModel


class AllianceCorrection(BaseModel):
    """Debt balance that had drifted from its receivables"""
    alliance_id: int
    previous_balance: Decimal
    reconciled_balance: Decimal
    difference: Decimal


class ReconciliationResult(BaseModel):
    checked_count: int
    corrected_alliances: List[AllianceCorrection] = []
    settled_receivable_ids: List[int] = []
