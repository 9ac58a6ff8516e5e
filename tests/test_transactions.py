import pytest

from streamcoin.core.exceptions import ConflictError, NotFoundError
from streamcoin.models.recharge_transaction import COMPLETED, FAILED, PENDING
from streamcoin.services import transactions as transactions_service

pytestmark = pytest.mark.asyncio


async def _create(reference="ref-1"):
    return await transactions_service.create(
        reference, user_id="u1", package_id="pack1", amount=5.0, currency="USD", coins=100
    )


async def test_create_is_pending(db):
    tx = await _create()
    stored = await transactions_service.get("ref-1")
    assert stored.status == PENDING
    assert stored.coins == 100
    assert stored.user_id == "u1"
    assert stored.processed_at is None
    assert tx.id == "ref-1"


async def test_duplicate_reference_rejected(db):
    await _create()
    with pytest.raises(ConflictError):
        await _create()


async def test_get_missing(db):
    assert await transactions_service.find("nope") is None
    with pytest.raises(NotFoundError):
        await transactions_service.get("nope")


async def test_transition_sets_processed_at(db):
    await _create()
    await transactions_service.transition("ref-1", FAILED, failure_reason="declined")
    tx = await transactions_service.get("ref-1")
    assert tx.status == FAILED
    assert tx.failure_reason == "declined"
    assert tx.processed_at is not None


async def test_transition_missing_reference(db):
    with pytest.raises(NotFoundError):
        await transactions_service.transition("nope", COMPLETED)


async def test_transition_if_pending_only_wins_once(db):
    await _create()
    assert await transactions_service.transition_if_pending("ref-1", COMPLETED) is True
    assert await transactions_service.transition_if_pending("ref-1", COMPLETED) is False
    assert await transactions_service.transition_if_pending("ref-1", FAILED) is False
    assert (await transactions_service.get("ref-1")).status == COMPLETED


async def test_mark_failed_best_effort_swallows_errors(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("store down")

    monkeypatch.setattr(transactions_service, "transition_if_pending", broken)
    await transactions_service.mark_failed_best_effort("ref-1", "gateway down")
