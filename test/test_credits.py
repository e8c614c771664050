import asyncio
from decimal import Decimal

import pytest

from gold_ledger.allocations.services import AllocationEngine
from gold_ledger.credits.services import CreditApplicationService
from gold_ledger.ledger.exceptions import (
    AlreadySettledException, AmountExceedsAvailableException,
    AmountExceedsReceivableException, CreditExhaustedException,
    InvalidAmountException, NotFoundException,
)
from gold_ledger.ledger.models import CreditState, LedgerEntryKind, ReceivableState
from gold_ledger.settlements.services import SettlementService


async def make_credit(store, ledger, alliance_id, amount="50.00"):
    """Credit balance produced by an overflowing payment"""
    event_id = await ledger.add_payment_event(alliance_id, amount)
    result = await AllocationEngine(store).allocate_payment(alliance_id, event_id, amount)
    return result.overflow_credit


@pytest.mark.asyncio
async def test_apply_partial_credit(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    receivable = await ledger.add_receivable(alliance.id, "100.00")

    result = await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "30.00")

    assert result.amount_applied == Decimal("30.00")
    assert result.credit_available_before == Decimal("50.00")
    assert result.new_credit_available == Decimal("20.00")
    assert result.credit_state == CreditState.PARTIALLY_USED
    assert result.receivable_balance_before == Decimal("100.00")
    assert result.new_receivable_balance == Decimal("70.00")
    assert result.receivable_settled is False
    assert result.alliance_debt_before == Decimal("100.00")
    assert result.alliance_debt_after == Decimal("70.00")
    assert result.traceability.receivable_correlative == receivable.correlative
    assert result.traceability.alliance_name == alliance.name
    assert result.traceability.origin_payment_nomenclature.startswith("TEST-")

    stored = await ledger.credit(credit.id)
    assert stored.available_amount == Decimal("20.00")
    assert stored.last_used_on is not None

    entry = (await ledger.entries(alliance.id))[0]
    assert entry.kind == LedgerEntryKind.CREDIT_APPLIED.value
    assert entry.amount == Decimal("-30.00")
    assert entry.credit_balance_id == credit.id
    assert entry.receivable_id == receivable.id

    async with store.reader() as repo:
        applications = await repo.get_credit_applications_for_receivable(receivable.id)
    assert [a.amount_applied for a in applications] == [Decimal("30.00")]
    await ledger.assert_conserved(alliance.id)


@pytest.mark.asyncio
async def test_amount_within_tolerance_exhausts_credit(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    receivable = await ledger.add_receivable(alliance.id, "100.00")

    result = await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "50.005")

    assert result.amount_applied == Decimal("50.00")
    assert result.new_credit_available == Decimal("0.00")
    assert result.credit_state == CreditState.EXHAUSTED
    assert result.new_receivable_balance == Decimal("50.00")
    await ledger.assert_conserved(alliance.id)


@pytest.mark.asyncio
async def test_amount_beyond_tolerance_is_rejected(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    receivable = await ledger.add_receivable(alliance.id, "100.00")

    with pytest.raises(AmountExceedsAvailableException) as exc_info:
        await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "50.02")

    assert exc_info.value.shortfall == Decimal("0.02")
    assert exc_info.value.detail["shortfall"] == "0.02"
    assert (await ledger.credit(credit.id)).available_amount == Decimal("50.00")
    assert (await ledger.receivable(receivable.id)).remaining_balance == Decimal("100.00")


@pytest.mark.asyncio
async def test_amount_larger_than_receivable_is_rejected(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    receivable = await ledger.add_receivable(alliance.id, "20.00")

    with pytest.raises(AmountExceedsReceivableException) as exc_info:
        await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "30.00")
    assert exc_info.value.shortfall == Decimal("10.00")


@pytest.mark.asyncio
async def test_receivable_settles_when_credit_covers_it(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    receivable = await ledger.add_receivable(alliance.id, "20.00")

    result = await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "20.00")

    assert result.receivable_settled is True
    assert result.receivable_state == ReceivableState.SETTLED
    assert result.credit_state == CreditState.PARTIALLY_USED
    assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_exhausted_credit_is_never_reused(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id, "20.00")
    first = await ledger.add_receivable(alliance.id, "100.00")
    service = CreditApplicationService(store)
    await service.apply_credit(credit.id, first.id, "20.00")

    with pytest.raises(CreditExhaustedException):
        await service.apply_credit(credit.id, first.id, "1.00")


@pytest.mark.asyncio
async def test_settled_receivable_is_rejected(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    receivable = await ledger.add_receivable(alliance.id, "20.00")
    await SettlementService(store).settle_receivable(receivable.id)

    with pytest.raises(AlreadySettledException):
        await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "5.00")


@pytest.mark.asyncio
async def test_missing_references(store, ledger):
    alliance = await ledger.add_alliance()
    credit = await make_credit(store, ledger, alliance.id)
    service = CreditApplicationService(store)

    with pytest.raises(NotFoundException):
        await service.apply_credit(9999, 1, "5.00")
    with pytest.raises(NotFoundException):
        await service.apply_credit(credit.id, 9999, "5.00")
    with pytest.raises(InvalidAmountException):
        await service.apply_credit(credit.id, 1, "0")


@pytest.mark.asyncio
async def test_credit_applies_to_receivable_of_another_alliance(store, ledger):
    owner = await ledger.add_alliance("Alianza Minera Tumeremo")
    debtor = await ledger.add_alliance("Alianza Minera El Peru")
    credit = await make_credit(store, ledger, owner.id)
    receivable = await ledger.add_receivable(debtor.id, "100.00")

    result = await CreditApplicationService(store).apply_credit(credit.id, receivable.id, "30.00")

    assert result.alliance_id == debtor.id
    assert result.credit_alliance_id == owner.id
    assert result.new_credit_available == Decimal("20.00")
    assert result.new_receivable_balance == Decimal("70.00")
    assert result.alliance_debt_before == Decimal("100.00")
    assert result.alliance_debt_after == Decimal("70.00")
    assert result.traceability.alliance_name == debtor.name
    assert result.traceability.credit_alliance_name == owner.name

    entry = (await ledger.entries(debtor.id))[0]
    assert entry.kind == LedgerEntryKind.CREDIT_APPLIED.value
    assert entry.amount == Decimal("-30.00")
    assert entry.credit_balance_id == credit.id
    assert LedgerEntryKind.CREDIT_APPLIED.value not in [e.kind for e in await ledger.entries(owner.id)]

    assert (await ledger.alliance(owner.id)).debt_balance == Decimal("0.00")
    await ledger.assert_conserved(owner.id)
    await ledger.assert_conserved(debtor.id)


@pytest.mark.asyncio
async def test_cross_applications_in_opposite_directions(store, ledger):
    first = await ledger.add_alliance()
    second = await ledger.add_alliance()
    first_credit = await make_credit(store, ledger, first.id)
    second_credit = await make_credit(store, ledger, second.id)
    first_receivable = await ledger.add_receivable(first.id, "40.00")
    second_receivable = await ledger.add_receivable(second.id, "40.00")
    service = CreditApplicationService(store)

    await asyncio.gather(
        service.apply_credit(first_credit.id, second_receivable.id, "25.00"),
        service.apply_credit(second_credit.id, first_receivable.id, "25.00"),
    )

    for alliance, receivable, credit in (
        (first, first_receivable, first_credit),
        (second, second_receivable, second_credit),
    ):
        assert (await ledger.receivable(receivable.id)).remaining_balance == Decimal("15.00")
        assert (await ledger.credit(credit.id)).available_amount == Decimal("25.00")
        assert (await ledger.alliance(alliance.id)).debt_balance == Decimal("15.00")
        await ledger.assert_conserved(alliance.id)
    assert len(store.locks) == 0
