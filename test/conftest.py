import os
from datetime import date
from decimal import Decimal
from itertools import count

import pytest_asyncio

from gold_ledger.core.db import build_engine, build_session_factory, create_schema
from gold_ledger.ledger.models import PaymentEvent
from gold_ledger.ledger.schemas import AllianceCreate
from gold_ledger.ledger.services import LedgerService
from gold_ledger.ledger.store import LedgerStore
from gold_ledger.ledger.utils import ZERO
from gold_ledger.receivables.services import ReceivableGenerator
from gold_ledger.smelting.provider import SqlSmeltingRecordProvider

TEST_DATABASE_FILE = os.getenv("TEST_DATABASE_FILE", "ledger_test.db")


class LedgerTestHelper:
    """Builds ledger fixtures through the real services"""

    def __init__(self, store: LedgerStore):
        self.store = store
        self.provider = SqlSmeltingRecordProvider(store.session_factory)
        self.ledger_service = LedgerService(store)
        # rate 1 makes a receivable's total equal to its gross weight
        self.flat_generator = ReceivableGenerator(store, self.provider, rate=Decimal("1"))
        self._sequence = count(1)

    async def add_alliance(self, name: str = "Alianza Minera El Callao"):
        number = next(self._sequence)
        return await self.ledger_service.register_alliance(
            AllianceCreate(name=name, rif=f"J-{number:08d}-0", legal_representative="Maria Perez")
        )

    async def add_smelting_record(self, alliance_id: int, weights, record_number: str = None):
        number = next(self._sequence)
        return await self.provider.register_record(
            record_number=record_number or f"AF/2025/SECTOR-{alliance_id}/{number:04d}",
            alliance_id=alliance_id,
            bar_gross_weights=[Decimal(str(w)) for w in weights],
            smelted_on=date(2025, 5, 10),
        )

    async def add_receivable(self, alliance_id: int, total: str):
        """Receivable whose total_amount is exactly `total`"""
        record = await self.add_smelting_record(alliance_id, [total])
        return await self.flat_generator.create_receivable(record.id)

    async def add_payment_event(self, alliance_id: int, gross_amount: str, delivered_on: date = date(2025, 5, 20)):
        """Payment event registered without allocating it"""
        number = next(self._sequence)

        async def work(repo):
            event = await repo.create_payment_event(
                PaymentEvent(
                    nomenclature=f"TEST-{alliance_id}-{number:04d}",
                    alliance_id=alliance_id,
                    delivered_on=delivered_on,
                    gross_amount=Decimal(gross_amount),
                )
            )
            return event.id

        return await self.store.run_in_transaction(work, alliance_id=alliance_id)

    async def alliance(self, alliance_id: int):
        async with self.store.reader() as repo:
            return await repo.get_alliance(alliance_id)

    async def receivable(self, receivable_id: int):
        async with self.store.reader() as repo:
            return await repo.get_receivable(receivable_id)

    async def credit(self, credit_balance_id: int):
        async with self.store.reader() as repo:
            return await repo.get_credit_balance(credit_balance_id)

    async def entries(self, alliance_id: int):
        async with self.store.reader() as repo:
            return await repo.get_ledger_entries(alliance_id)

    async def assert_conserved(self, alliance_id: int):
        """Cached debt equals the pending receivable balances"""
        async with self.store.reader() as repo:
            alliance = await repo.get_alliance(alliance_id)
            pending = await repo.sum_pending_balance(alliance_id)
        assert abs(alliance.debt_balance - pending) <= Decimal("0.01")
        assert alliance.debt_balance >= ZERO


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / TEST_DATABASE_FILE}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(engine):
    return LedgerStore(build_session_factory(engine), retry_attempts=3, retry_backoff_seconds=0)


@pytest_asyncio.fixture
async def ledger(store):
    return LedgerTestHelper(store)
