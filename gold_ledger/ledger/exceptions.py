# gold_ledger/ledger/exceptions.py

"""
Custom exceptions for the debt ledger.

Every exception carries the HTTP status a transport layer should answer with
and a structured detail naming the exact reason or shortfall.
"""

from decimal import Decimal
from typing import Any, Dict, Optional, Union

from fastapi import HTTPException, status


class LedgerBaseException(Exception):
    """Base exception for all ledger errors"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    @property
    def detail(self) -> Dict[str, Any]:
        payload = {"error": type(self).__name__, "message": self.message}
        payload.update({k: str(v) if isinstance(v, Decimal) else v for k, v in self.context.items()})
        return payload


class NotFoundException(LedgerBaseException):
    """Entity reference does not resolve"""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, identifier: Union[int, str]):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}", entity=entity, identifier=identifier)


class DuplicateReceivableException(LedgerBaseException):
    """A receivable already exists for the smelting record"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, smelting_record_id: int, existing_receivable_id: Optional[int] = None):
        self.smelting_record_id = smelting_record_id
        self.existing_receivable_id = existing_receivable_id
        super().__init__(
            f"Receivable already exists for smelting record {smelting_record_id}",
            smelting_record_id=smelting_record_id,
            existing_receivable_id=existing_receivable_id,
        )


class DuplicateAllianceException(LedgerBaseException):
    """An alliance with the same RIF is already registered"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, rif: str):
        self.rif = rif
        super().__init__(f"Alliance already registered with RIF {rif}", rif=rif)


class DuplicatePaymentEventException(LedgerBaseException):
    """A payment event with the same nomenclature already exists"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, nomenclature: str):
        self.nomenclature = nomenclature
        super().__init__(f"Payment event already registered: {nomenclature}", nomenclature=nomenclature)


class InvalidAmountException(LedgerBaseException):
    """Non-positive or malformed amount"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, amount: Any, reason: str = ""):
        self.amount = amount
        super().__init__(f"Invalid amount: {amount}. {reason}".strip(), amount=str(amount), reason=reason)


class AlreadySettledException(LedgerBaseException):
    """Operation targets a receivable that is already settled"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, receivable_id: int, message: Optional[str] = None, **context: Any):
        self.receivable_id = receivable_id
        super().__init__(
            message or f"Receivable {receivable_id} is already settled",
            receivable_id=receivable_id, **context
        )


class CreditExhaustedException(AlreadySettledException):
    """Credit balance has nothing left to apply"""

    def __init__(self, credit_balance_id: int):
        self.credit_balance_id = credit_balance_id
        LedgerBaseException.__init__(
            self, f"Credit balance {credit_balance_id} is exhausted",
            credit_balance_id=credit_balance_id,
        )


class PaymentAlreadyAllocatedException(AlreadySettledException):
    """Payment event was already allocated against debt"""

    def __init__(self, payment_event_id: int):
        self.payment_event_id = payment_event_id
        LedgerBaseException.__init__(
            self, f"Payment event {payment_event_id} has already been allocated",
            payment_event_id=payment_event_id,
        )


class AmountExceedsAvailableException(LedgerBaseException):
    """Requested amount is larger than the credit available"""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, credit_balance_id: int, requested: Decimal, available: Decimal):
        self.credit_balance_id = credit_balance_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Only {available:.2f} g available in credit balance {credit_balance_id} "
            f"(requested {requested:.2f} g, short by {self.shortfall:.2f} g)",
            credit_balance_id=credit_balance_id,
            requested=requested, available=available, shortfall=self.shortfall,
        )


class AmountExceedsReceivableException(LedgerBaseException):
    """Requested amount is larger than the receivable's remaining balance"""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, receivable_id: int, requested: Decimal, remaining: Decimal):
        self.receivable_id = receivable_id
        self.requested = requested
        self.remaining = remaining
        self.shortfall = requested - remaining
        super().__init__(
            f"Amount exceeds remaining balance of receivable {receivable_id} "
            f"({remaining:.2f} g, requested {requested:.2f} g, over by {self.shortfall:.2f} g)",
            receivable_id=receivable_id,
            requested=requested, remaining=remaining, shortfall=self.shortfall,
        )


class TransactionConflictException(LedgerBaseException):
    """Concurrent write detected; the whole operation may be retried"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, reason: str):
        super().__init__(f"Transaction conflict: {reason}", reason=reason)


def to_http_exception(exc: LedgerBaseException) -> HTTPException:
    """Translate a ledger exception for the HTTP layer"""
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
