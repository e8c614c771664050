# gold_ledger/__init__.py

"""
Gold Collections Ledger

Debt ledger and credit allocation engine for the alliances of a gold-mining
cooperative:
- Receivables generated from smelting records at a configured rate
- Payment events allocated FIFO (or to selected receivables)
- Overflow kept as credit balances and applied later by hand
- Administrative settlement and reconciliation of cached debt

Architecture:
- Models: SQLAlchemy 2.x ORM models with async support
- Repository: Data access layer with async database operations
- Store: Transaction boundary, serialized per alliance
- Services: Business logic layer with dependency injection
- Router: FastAPI endpoints with async handlers
"""
