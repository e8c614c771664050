from decimal import Decimal

import pytest

from gold_ledger.allocations.schemas import ReceivableSelection
from gold_ledger.allocations.services import AllocationEngine, SelectedReceivablesStrategy
from gold_ledger.ledger.exceptions import (
    AlreadySettledException, InvalidAmountException, NotFoundException,
    PaymentAlreadyAllocatedException,
)
from gold_ledger.ledger.models import CreditState, LedgerEntryKind, ReceivableState
from gold_ledger.ledger.repository import LedgerRepository


@pytest.mark.asyncio
async def test_fifo_settles_oldest_receivable_first(store, ledger):
    alliance = await ledger.add_alliance()
    r1 = await ledger.add_receivable(alliance.id, "100.00")
    r2 = await ledger.add_receivable(alliance.id, "50.00")
    event_id = await ledger.add_payment_event(alliance.id, "120.00")

    result = await AllocationEngine(store).allocate_payment(alliance.id, event_id, "120.00")

    assert result.applied_total == Decimal("120.00")
    assert result.overflow_credit is None
    assert result.settled_count == 1
    assert [line.receivable_id for line in result.allocations] == [r1.id, r2.id]
    assert [line.amount_applied for line in result.allocations] == [Decimal("100.00"), Decimal("20.00")]

    first = await ledger.receivable(r1.id)
    second = await ledger.receivable(r2.id)
    assert first.remaining_balance == Decimal("0.00")
    assert first.state == ReceivableState.SETTLED.value
    assert first.settled_on is not None
    assert second.remaining_balance == Decimal("30.00")
    assert second.state == ReceivableState.PENDING.value
    assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("30.00")
    await ledger.assert_conserved(alliance.id)


@pytest.mark.asyncio
async def test_overflow_becomes_credit_balance(store, ledger):
    alliance = await ledger.add_alliance()
    receivable = await ledger.add_receivable(alliance.id, "100.00")
    event_id = await ledger.add_payment_event(alliance.id, "150.00")

    result = await AllocationEngine(store).allocate_payment(alliance.id, event_id, "150.00")

    assert result.applied_total == Decimal("100.00")
    assert result.settled_count == 1
    credit = result.overflow_credit
    assert credit is not None
    assert credit.original_amount == Decimal("50.00")
    assert credit.available_amount == Decimal("50.00")
    assert credit.state == CreditState.AVAILABLE
    assert credit.payment_event_id == event_id

    assert (await ledger.receivable(receivable.id)).state == ReceivableState.SETTLED.value
    async with store.reader() as repo:
        assert len(await repo.get_credits_for_payment_event(event_id)) == 1

    entries = await ledger.entries(alliance.id)
    generated = [e for e in entries if e.kind == LedgerEntryKind.CREDIT_GENERATED.value]
    assert len(generated) == 1
    assert generated[0].amount == Decimal("50.00")
    assert generated[0].balance_before == generated[0].balance_after == Decimal("0.00")
    await ledger.assert_conserved(alliance.id)


@pytest.mark.asyncio
async def test_payment_without_pending_receivables_is_all_credit(store, ledger):
    alliance = await ledger.add_alliance()
    event_id = await ledger.add_payment_event(alliance.id, "75.00")

    result = await AllocationEngine(store).allocate_payment(alliance.id, event_id, "75.00")

    assert result.applied_total == Decimal("0.00")
    assert result.allocations == []
    assert result.overflow_credit.available_amount == Decimal("75.00")


@pytest.mark.asyncio
async def test_ledger_entries_record_balance_progression(store, ledger):
    alliance = await ledger.add_alliance()
    await ledger.add_receivable(alliance.id, "100.00")
    await ledger.add_receivable(alliance.id, "50.00")
    event_id = await ledger.add_payment_event(alliance.id, "120.00")

    await AllocationEngine(store).allocate_payment(alliance.id, event_id, "120.00")

    applied = [
        e for e in reversed(await ledger.entries(alliance.id))
        if e.kind == LedgerEntryKind.PAYMENT_APPLIED.value
    ]
    assert [(e.amount, e.balance_before, e.balance_after) for e in applied] == [
        (Decimal("-100.00"), Decimal("150.00"), Decimal("50.00")),
        (Decimal("-20.00"), Decimal("50.00"), Decimal("30.00")),
    ]
    assert all(e.payment_event_id == event_id for e in applied)


@pytest.mark.asyncio
async def test_allocation_is_atomic_when_a_step_fails(store, ledger, monkeypatch):
    alliance = await ledger.add_alliance()
    r1 = await ledger.add_receivable(alliance.id, "100.00")
    r2 = await ledger.add_receivable(alliance.id, "50.00")
    event_id = await ledger.add_payment_event(alliance.id, "120.00")
    entries_before = len(await ledger.entries(alliance.id))

    original = LedgerRepository.add_ledger_entry
    calls = {"count": 0}

    async def failing_add_ledger_entry(self, *args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            raise RuntimeError("injected fault")
        return await original(self, *args, **kwargs)

    monkeypatch.setattr(LedgerRepository, "add_ledger_entry", failing_add_ledger_entry)

    with pytest.raises(RuntimeError):
        await AllocationEngine(store).allocate_payment(alliance.id, event_id, "120.00")

    monkeypatch.setattr(LedgerRepository, "add_ledger_entry", original)

    assert (await ledger.receivable(r1.id)).remaining_balance == Decimal("100.00")
    assert (await ledger.receivable(r1.id)).state == ReceivableState.PENDING.value
    assert (await ledger.receivable(r2.id)).remaining_balance == Decimal("50.00")
    assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("150.00")
    assert len(await ledger.entries(alliance.id)) == entries_before
    async with store.reader() as repo:
        assert await repo.get_allocations_for_payment_event(event_id) == []
        assert (await repo.get_payment_event(event_id)).allocated_on is None

    # the event can still be allocated once the fault is gone
    result = await AllocationEngine(store).allocate_payment(alliance.id, event_id, "120.00")
    assert result.applied_total == Decimal("120.00")


@pytest.mark.asyncio
async def test_concrete_collection_scenario(store, ledger):
    from gold_ledger.credits.services import CreditApplicationService
    from gold_ledger.receivables.services import ReceivableGenerator

    alliance = await ledger.add_alliance()
    record = await ledger.add_smelting_record(alliance.id, ["1000.00"])
    receivable = await ReceivableGenerator(
        store, ledger.provider, rate=Decimal("0.35")
    ).create_receivable(record.id)
    assert receivable.total_amount == Decimal("350.00")

    engine = AllocationEngine(store)
    first_event = await ledger.add_payment_event(alliance.id, "200.00")
    first = await engine.allocate_payment(alliance.id, first_event, "200.00")
    assert first.overflow_credit is None
    after_first = await ledger.receivable(receivable.id)
    assert after_first.remaining_balance == Decimal("150.00")
    assert after_first.state == ReceivableState.PENDING.value

    second_event = await ledger.add_payment_event(alliance.id, "200.00")
    second = await engine.allocate_payment(alliance.id, second_event, "200.00")
    after_second = await ledger.receivable(receivable.id)
    assert after_second.remaining_balance == Decimal("0.00")
    assert after_second.state == ReceivableState.SETTLED.value
    assert second.overflow_credit.available_amount == Decimal("50.00")
    assert second.overflow_credit.state == CreditState.AVAILABLE

    other = await ledger.add_receivable(alliance.id, "100.00")
    applied = await CreditApplicationService(store).apply_credit(
        second.overflow_credit.id, other.id, "30.00"
    )
    assert applied.new_credit_available == Decimal("20.00")
    assert applied.credit_state == CreditState.PARTIALLY_USED
    assert applied.new_receivable_balance == Decimal("70.00")
    assert applied.receivable_state == ReceivableState.PENDING
    await ledger.assert_conserved(alliance.id)


# === Payment event guards ===

@pytest.mark.asyncio
async def test_payment_event_cannot_be_allocated_twice(store, ledger):
    alliance = await ledger.add_alliance()
    await ledger.add_receivable(alliance.id, "100.00")
    event_id = await ledger.add_payment_event(alliance.id, "40.00")
    engine = AllocationEngine(store)
    await engine.allocate_payment(alliance.id, event_id, "40.00")

    with pytest.raises(PaymentAlreadyAllocatedException):
        await engine.allocate_payment(alliance.id, event_id, "40.00")
    assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("60.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-10.00", "abc"])
async def test_invalid_payment_amount(store, ledger, amount):
    alliance = await ledger.add_alliance()
    event_id = await ledger.add_payment_event(alliance.id, "40.00")

    with pytest.raises(InvalidAmountException):
        await AllocationEngine(store).allocate_payment(alliance.id, event_id, amount)


@pytest.mark.asyncio
async def test_amount_cannot_exceed_payment_gross(store, ledger):
    alliance = await ledger.add_alliance()
    event_id = await ledger.add_payment_event(alliance.id, "40.00")

    with pytest.raises(InvalidAmountException):
        await AllocationEngine(store).allocate_payment(alliance.id, event_id, "40.01")


@pytest.mark.asyncio
async def test_payment_event_of_another_alliance(store, ledger):
    alliance = await ledger.add_alliance()
    other = await ledger.add_alliance("Alianza Sur")
    event_id = await ledger.add_payment_event(other.id, "40.00")

    with pytest.raises(NotFoundException):
        await AllocationEngine(store).allocate_payment(alliance.id, event_id, "40.00")


@pytest.mark.asyncio
async def test_unknown_alliance(store, ledger):
    with pytest.raises(NotFoundException):
        await AllocationEngine(store).allocate_payment(404, 1, "10.00")


# === Selected receivables ===

@pytest.mark.asyncio
async def test_selected_strategy_follows_given_order_and_caps(store, ledger):
    alliance = await ledger.add_alliance()
    r1 = await ledger.add_receivable(alliance.id, "100.00")
    r2 = await ledger.add_receivable(alliance.id, "50.00")
    event_id = await ledger.add_payment_event(alliance.id, "80.00")

    strategy = SelectedReceivablesStrategy([
        ReceivableSelection(receivable_id=r2.id, max_amount=Decimal("50.00")),
        ReceivableSelection(receivable_id=r1.id, max_amount=Decimal("10.00")),
    ])
    result = await AllocationEngine(store).allocate_payment(alliance.id, event_id, "80.00", strategy)

    assert [(line.receivable_id, line.amount_applied) for line in result.allocations] == [
        (r2.id, Decimal("50.00")),
        (r1.id, Decimal("10.00")),
    ]
    assert result.overflow_credit.available_amount == Decimal("20.00")
    assert (await ledger.receivable(r1.id)).remaining_balance == Decimal("90.00")
    assert (await ledger.receivable(r2.id)).state == ReceivableState.SETTLED.value
    await ledger.assert_conserved(alliance.id)


@pytest.mark.asyncio
async def test_selected_strategy_rejects_settled_receivable(store, ledger):
    from gold_ledger.settlements.services import SettlementService

    alliance = await ledger.add_alliance()
    receivable = await ledger.add_receivable(alliance.id, "100.00")
    await SettlementService(store).settle_receivable(receivable.id)
    event_id = await ledger.add_payment_event(alliance.id, "10.00")

    strategy = SelectedReceivablesStrategy([
        ReceivableSelection(receivable_id=receivable.id, max_amount=Decimal("10.00")),
    ])
    with pytest.raises(AlreadySettledException):
        await AllocationEngine(store).allocate_payment(alliance.id, event_id, "10.00", strategy)


@pytest.mark.asyncio
async def test_selected_strategy_rejects_foreign_receivable_and_bad_cap(store, ledger):
    alliance = await ledger.add_alliance()
    other = await ledger.add_alliance("Alianza Sur")
    foreign = await ledger.add_receivable(other.id, "100.00")
    own = await ledger.add_receivable(alliance.id, "100.00")
    event_id = await ledger.add_payment_event(alliance.id, "10.00")
    engine = AllocationEngine(store)

    with pytest.raises(NotFoundException):
        await engine.allocate_payment(alliance.id, event_id, "10.00", SelectedReceivablesStrategy([
            ReceivableSelection(receivable_id=foreign.id, max_amount=Decimal("10.00")),
        ]))
    with pytest.raises(InvalidAmountException):
        await engine.allocate_payment(alliance.id, event_id, "10.00", SelectedReceivablesStrategy([
            ReceivableSelection(receivable_id=own.id, max_amount=Decimal("0")),
        ]))


# === Preview ===

@pytest.mark.asyncio
async def test_preview_matches_allocation_without_writing(store, ledger):
    alliance = await ledger.add_alliance()
    r1 = await ledger.add_receivable(alliance.id, "100.00")
    await ledger.add_receivable(alliance.id, "50.00")
    engine = AllocationEngine(store)
    entries_before = len(await ledger.entries(alliance.id))

    preview = await engine.preview_allocation(alliance.id, "170.00")

    assert preview.applied_total == Decimal("150.00")
    assert preview.overflow == Decimal("20.00")
    assert preview.settled_count == 2
    assert preview.allocations[0].receivable_id == r1.id
    assert preview.allocations[0].balance_after == Decimal("0.00")

    assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("150.00")
    assert (await ledger.receivable(r1.id)).remaining_balance == Decimal("100.00")
    assert len(await ledger.entries(alliance.id)) == entries_before

    event_id = await ledger.add_payment_event(alliance.id, "170.00")
    result = await engine.allocate_payment(alliance.id, event_id, "170.00")
    assert result.allocations == preview.allocations
    assert result.overflow_credit.available_amount == preview.overflow
