# gold_ledger/ledger/models.py

"""
Ledger models - SQLAlchemy 2.x

Entities of the debt ledger:
- Alliance: member cooperative with a cached aggregate debt balance.
- PaymentEvent: physical gold delivery ("acta de arrime") that pays down debt.
- Receivable: amount owed for one smelting record ("acta de cobranza").
- AllocationRecord: how much of a payment event went to which receivable.
- CreditBalance: unapplied payment overflow ("saldo a favor").
- CreditApplication: how much of a credit balance went to which receivable.
- LedgerEntry: immutable audit trail of every balance mutation.

Audit links (allocation records, credit applications, ledger entries) only hold
identifiers of the rows they describe; nothing here owns a receivable.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from gold_ledger.core.db import AuditMixin, Base
from gold_ledger.smelting.models import SmeltingRecord  # noqa: F401  receivables.smelting_record_id references it


# === Enums ===

class ReceivableState(str, PyEnum):
    """Lifecycle of a receivable"""
    PENDING = "PENDING"
    SETTLED = "SETTLED"


class CreditState(str, PyEnum):
    """Lifecycle of a credit balance"""
    AVAILABLE = "AVAILABLE"
    PARTIALLY_USED = "PARTIALLY_USED"
    EXHAUSTED = "EXHAUSTED"


class LedgerEntryKind(str, PyEnum):
    """Balance-affecting events recorded in the ledger"""
    RECEIVABLE_CREATED = "RECEIVABLE_CREATED"
    PAYMENT_APPLIED = "PAYMENT_APPLIED"
    CREDIT_GENERATED = "CREDIT_GENERATED"
    CREDIT_APPLIED = "CREDIT_APPLIED"
    RECEIVABLE_SETTLED = "RECEIVABLE_SETTLED"


# === Alliance ===

class Alliance(Base, AuditMixin):
    """
    Member cooperative with a debt relationship to the operator.

    debt_balance is a cached projection: it must equal the sum of remaining
    balances of the alliance's PENDING receivables. The version column makes
    concurrent writers that slipped past the row lock fail with StaleDataError.
    """
    __tablename__ = "alliances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    rif: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True,
        comment="Tax identifier of the alliance"
    )

    legal_representative: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    debt_balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0.00"), nullable=False,
        comment="Aggregate outstanding debt in grams"
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Alliance(id={self.id}, name='{self.name}', debt_balance={self.debt_balance})>"


# === Payment Event ===

class PaymentEvent(Base, AuditMixin):
    """Delivery of gross gold weight by an alliance ("acta de arrime")"""
    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    nomenclature: Mapped[str] = mapped_column(
        String(96), unique=True, nullable=False, index=True,
        comment="Delivery identifier (e.g., CVM-GGP-GPM-3-0001/05/2025)"
    )

    alliance_id: Mapped[int] = mapped_column(
        ForeignKey("alliances.id", ondelete="RESTRICT"),
        nullable=False, index=True
    )

    delivered_on: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    gross_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, comment="Gross weight delivered in grams"
    )

    pieces: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    observations: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    allocated_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="When the delivery was allocated against debt"
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentEvent(id={self.id}, nomenclature='{self.nomenclature}', "
            f"gross_amount={self.gross_amount})>"
        )


# === Receivable ===

class Receivable(Base, AuditMixin):
    """
    Amount owed by an alliance for one smelting record.

    total_amount is fixed at creation; remaining_balance only decreases and
    state only moves from PENDING to SETTLED.
    """
    __tablename__ = "receivables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    correlative: Mapped[str] = mapped_column(
        String(96), nullable=False, index=True,
        comment="Human readable identifier (e.g., CVM/GGP/GPM/SECTOR/0001)"
    )

    smelting_record_id: Mapped[int] = mapped_column(
        ForeignKey("smelting_records.id", ondelete="RESTRICT"),
        unique=True, nullable=False,
        comment="Originating smelting record (one receivable per record)"
    )

    alliance_id: Mapped[int] = mapped_column(
        ForeignKey("alliances.id", ondelete="RESTRICT"),
        nullable=False, index=True
    )

    gross_weight: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, comment="Sum of bar gross weights"
    )

    rate: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), nullable=False, comment="Collection rate applied"
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    state: Mapped[str] = mapped_column(
        SQLEnum("PENDING", "SETTLED", name="receivable_state_enum"),
        default="PENDING", nullable=False, index=True
    )

    settled_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_receivable_alliance_state", "alliance_id", "state"),
    )

    def __repr__(self) -> str:
        return (
            f"<Receivable(id={self.id}, correlative='{self.correlative}', "
            f"remaining_balance={self.remaining_balance}, state='{self.state}')>"
        )


# === Allocation Record ===

class AllocationRecord(Base, AuditMixin):
    """Portion of a payment event applied to a receivable. Never updated."""
    __tablename__ = "allocation_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    payment_event_id: Mapped[int] = mapped_column(
        ForeignKey("payment_events.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    receivable_id: Mapped[int] = mapped_column(
        ForeignKey("receivables.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    amount_applied: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)


# === Credit Balance ===

class CreditBalance(Base, AuditMixin):
    """
    Unapplied payment overflow owned by an alliance.

    available_amount only decreases; an EXHAUSTED credit is never reused.
    """
    __tablename__ = "credit_balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    alliance_id: Mapped[int] = mapped_column(
        ForeignKey("alliances.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    payment_event_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_events.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Payment event whose overflow produced the credit"
    )

    original_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    available_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    state: Mapped[str] = mapped_column(
        SQLEnum("AVAILABLE", "PARTIALLY_USED", "EXHAUSTED", name="credit_state_enum"),
        default="AVAILABLE", nullable=False, index=True
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    last_used_on: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CreditBalance(id={self.id}, available_amount={self.available_amount}, "
            f"state='{self.state}')>"
        )


# === Credit Application ===

class CreditApplication(Base, AuditMixin):
    """Portion of a credit balance applied to a receivable. Never updated."""
    __tablename__ = "credit_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    credit_balance_id: Mapped[int] = mapped_column(
        ForeignKey("credit_balances.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    receivable_id: Mapped[int] = mapped_column(
        ForeignKey("receivables.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    amount_applied: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# === Ledger Entry ===

class LedgerEntry(Base, AuditMixin):
    """
    Immutable record of a single balance-affecting event.

    amount is signed: positive increases what the alliance owes (or records a
    new credit), negative reduces it. balance_before/balance_after always
    describe the alliance debt balance.
    """
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    alliance_id: Mapped[int] = mapped_column(
        ForeignKey("alliances.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    receivable_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("receivables.id", ondelete="SET NULL"), nullable=True, index=True
    )

    credit_balance_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("credit_balances.id", ondelete="SET NULL"), nullable=True
    )

    payment_event_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_events.id", ondelete="SET NULL"), nullable=True
    )

    kind: Mapped[str] = mapped_column(
        SQLEnum(
            "RECEIVABLE_CREATED", "PAYMENT_APPLIED", "CREDIT_GENERATED",
            "CREDIT_APPLIED", "RECEIVABLE_SETTLED",
            name="ledger_entry_kind_enum"
        ),
        nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    balance_before: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_ledger_entry_alliance_created", "alliance_id", "created_on"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, kind='{self.kind}', amount={self.amount}, "
            f"balance_after={self.balance_after})>"
        )
