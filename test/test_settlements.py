from decimal import Decimal

import pytest

from gold_ledger.allocations.services import AllocationEngine
from gold_ledger.ledger.exceptions import AlreadySettledException, NotFoundException
from gold_ledger.ledger.models import LedgerEntryKind, ReceivableState
from gold_ledger.settlements.services import SettlementService


@pytest.mark.asyncio
async def test_settlement_writes_off_remaining_balance(store, ledger):
    alliance = await ledger.add_alliance()
    receivable = await ledger.add_receivable(alliance.id, "100.00")
    await ledger.add_receivable(alliance.id, "40.00")
    event_id = await ledger.add_payment_event(alliance.id, "25.00")
    await AllocationEngine(store).allocate_payment(alliance.id, event_id, "25.00")

    settled = await SettlementService(store).settle_receivable(receivable.id)

    assert settled.state == ReceivableState.SETTLED
    assert settled.remaining_balance == Decimal("0.00")
    assert settled.settled_on is not None
    assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("40.00")

    entry = (await ledger.entries(alliance.id))[0]
    assert entry.kind == LedgerEntryKind.RECEIVABLE_SETTLED.value
    assert entry.amount == Decimal("-75.00")
    assert entry.balance_before == Decimal("115.00")
    assert entry.balance_after == Decimal("40.00")
    await ledger.assert_conserved(alliance.id)


@pytest.mark.asyncio
async def test_second_settlement_fails_and_changes_nothing(store, ledger):
    alliance = await ledger.add_alliance()
    receivable = await ledger.add_receivable(alliance.id, "100.00")
    service = SettlementService(store)
    await service.settle_receivable(receivable.id)
    entries_after_first = len(await ledger.entries(alliance.id))

    with pytest.raises(AlreadySettledException):
        await service.settle_receivable(receivable.id)

    stored = await ledger.receivable(receivable.id)
    assert stored.state == ReceivableState.SETTLED.value
    assert stored.remaining_balance == Decimal("0.00")
    assert len(await ledger.entries(alliance.id)) == entries_after_first


@pytest.mark.asyncio
async def test_settle_unknown_receivable(store):
    with pytest.raises(NotFoundException):
        await SettlementService(store).settle_receivable(12345)
