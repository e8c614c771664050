# gold_ledger/receivables/schemas.py

from pydantic import BaseModel


class ReceivableCreate(BaseModel):
    """Schema for generating the receivable of a smelting record"""
    smelting_record_id: int
