# gold_ledger/smelting/models.py

"""
Smelting records as supplied by the smelting collaborator.

A smelting record ("acta de fundicion") groups the physical bars cast for one
alliance. The ledger only reads these rows: the gross weight of each bar is the
base of the receivable generated for the record.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gold_ledger.core.db import AuditMixin, Base


class SmeltingRecord(Base, AuditMixin):
    """Smelting event for one alliance"""
    __tablename__ = "smelting_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    record_number: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True,
        comment="Smelting record number (e.g., AF/2025/SECTOR/0001)"
    )

    alliance_id: Mapped[int] = mapped_column(
        ForeignKey("alliances.id", ondelete="RESTRICT"),
        nullable=False, index=True, comment="Alliance that delivered the material"
    )

    smelted_on: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True, comment="Business date of the smelting"
    )

    observations: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    bars: Mapped[List["SmeltingBar"]] = relationship(
        "SmeltingBar", back_populates="smelting_record",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="SmeltingBar.bar_number"
    )

    def __repr__(self) -> str:
        return (
            f"<SmeltingRecord(id={self.id}, record_number='{self.record_number}', "
            f"alliance_id={self.alliance_id})>"
        )


class SmeltingBar(Base, AuditMixin):
    """Physical bar produced by a smelting record"""
    __tablename__ = "smelting_bars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    smelting_record_id: Mapped[int] = mapped_column(
        ForeignKey("smelting_records.id", ondelete="CASCADE"),
        nullable=False, index=True
    )

    bar_number: Mapped[int] = mapped_column(Integer, nullable=False)

    gross_weight: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, comment="Gross weight in grams"
    )

    fine_weight: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 2), nullable=True, comment="Fine weight in grams"
    )

    smelting_record: Mapped["SmeltingRecord"] = relationship(
        "SmeltingRecord", back_populates="bars"
    )
