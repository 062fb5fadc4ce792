"""
Soft delete manager tests.

Covers the delete and undo flows, token expiry against a simulated clock,
single/bulk token separation, and rollback ordering when a delete fails.
"""

import asyncio

import pytest

from storefront.application.soft_delete import SoftDeleteManager
from storefront.application.undo_store import UndoTokenStore
from storefront.domain.exceptions import (
    InvalidUndoTokenError,
    NotFoundError,
    OperationFailedError,
    UndoTokenExpiredError,
    UndoTokenKindError,
    ValidationError,
)
from storefront.domain.undo import (
    BulkEntityDeletion,
    SingleEntityDeletion,
    SoftDeleteOptions,
)


async def _noop_delete():
    return {"deleted": True}


async def _restore(metadata):
    return metadata.entity_id


@pytest.mark.asyncio
async def test_soft_delete_returns_token_and_metadata(manager, clock):
    result = await manager.execute_soft_delete("product", "p1", _noop_delete)

    assert result.success is True
    assert result.message == "product deleted successfully"
    assert result.undo_token.startswith("undo_product_p1_")
    assert (result.undo_expires_at - clock.current).total_seconds() == 5
    assert result.metadata["entity_id"] == "p1"
    assert result.metadata["deleted_at"] == clock.current


@pytest.mark.asyncio
async def test_soft_delete_without_undo_token(manager):
    result = await manager.execute_soft_delete(
        "product",
        "p1",
        _noop_delete,
        SoftDeleteOptions(include_undo_token=False),
    )

    assert result.success is True
    assert result.undo_token is None
    assert result.undo_expires_at is None
    assert manager.get_active_tokens_count() == 0


@pytest.mark.asyncio
async def test_undo_succeeds_exactly_once(manager):
    result = await manager.execute_soft_delete("product", "p1", _noop_delete)

    undo = await manager.execute_undo(result.undo_token, _restore)
    assert undo.success is True
    assert undo.message == "product restored successfully"
    assert undo.restored_item == "p1"

    with pytest.raises(InvalidUndoTokenError):
        await manager.execute_undo(result.undo_token, _restore)


@pytest.mark.asyncio
async def test_undo_after_expiry_fails_before_timer_fires(manager, clock):
    result = await manager.execute_soft_delete("product", "p1", _noop_delete)
    clock.advance(5001)
    calls = []

    async def restore(metadata):
        calls.append(metadata)

    with pytest.raises(UndoTokenExpiredError):
        await manager.execute_undo(result.undo_token, restore)
    assert calls == []


@pytest.mark.asyncio
async def test_undo_after_timer_fired_fails():
    manager = SoftDeleteManager(UndoTokenStore())
    try:
        result = await manager.execute_soft_delete(
            "product", "p1", _noop_delete, SoftDeleteOptions(undo_timeout_ms=10)
        )
        await asyncio.sleep(0.05)

        with pytest.raises(InvalidUndoTokenError):
            await manager.execute_undo(result.undo_token, _restore)
    finally:
        manager.store.close()


@pytest.mark.asyncio
async def test_simulated_clock_scenario(manager, clock):
    result = await manager.execute_soft_delete(
        "product",
        "product-123",
        _noop_delete,
        SoftDeleteOptions(undo_timeout_ms=1000),
    )
    assert manager.is_valid_undo_token(result.undo_token) is True

    clock.advance(1100)

    assert manager.is_valid_undo_token(result.undo_token) is False
    with pytest.raises(UndoTokenExpiredError):
        await manager.execute_undo(result.undo_token, _restore)


@pytest.mark.asyncio
async def test_bulk_scenario(manager):
    deleted_batches = []
    restore_calls = []

    async def bulk_delete(ids):
        deleted_batches.append(ids)
        return len(ids)

    async def bulk_restore(metadata):
        restore_calls.append(metadata)
        return list(metadata.entity_ids)

    result = await manager.execute_bulk_soft_delete(
        "product", ["a", "b", "c"], bulk_delete
    )
    assert result.message == "3 products deleted successfully"
    assert result.metadata["count"] == 3
    assert "bulk_3" in result.undo_token
    assert deleted_batches == [["a", "b", "c"]]

    undo = await manager.execute_bulk_undo(result.undo_token, bulk_restore)

    assert undo.message == "3 products restored successfully"
    assert len(restore_calls) == 1
    assert isinstance(restore_calls[0], BulkEntityDeletion)
    assert list(restore_calls[0].entity_ids) == ["a", "b", "c"]
    assert undo.restored_item == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_empty_bulk_never_calls_operation(manager):
    calls = []

    async def bulk_delete(ids):
        calls.append(ids)

    with pytest.raises(ValidationError, match="No entity IDs provided"):
        await manager.execute_bulk_soft_delete("product", [], bulk_delete)
    assert calls == []
    assert manager.get_active_tokens_count() == 0


@pytest.mark.asyncio
async def test_bulk_token_rejected_on_single_path(manager):
    async def bulk_delete(ids):
        return len(ids)

    result = await manager.execute_bulk_soft_delete("product", ["a"], bulk_delete)

    with pytest.raises(UndoTokenKindError, match="bulk operation"):
        await manager.execute_undo(result.undo_token, _restore)
    # The token survives the mismatch
    assert manager.is_valid_undo_token(result.undo_token)


@pytest.mark.asyncio
async def test_single_token_rejected_on_bulk_path(manager):
    result = await manager.execute_soft_delete("product", "p1", _noop_delete)

    with pytest.raises(UndoTokenKindError, match="not for bulk operation"):
        await manager.execute_bulk_undo(result.undo_token, _restore)
    assert manager.is_valid_undo_token(result.undo_token)


@pytest.mark.asyncio
async def test_delete_failure_runs_rollbacks_in_reverse(manager):
    order = []

    async def failing_delete():
        raise RuntimeError("disk on fire")

    def rollback(name):
        async def run():
            order.append(name)

        return run

    with pytest.raises(OperationFailedError, match="Failed to delete product") as exc:
        await manager.execute_soft_delete(
            "product",
            "p1",
            failing_delete,
            SoftDeleteOptions(
                rollback_operations=[rollback("first"), rollback("second")]
            ),
        )

    assert isinstance(exc.value.__cause__, RuntimeError)
    assert order == ["second", "first"]
    assert manager.get_active_tokens_count() == 0


@pytest.mark.asyncio
async def test_domain_error_from_delete_propagates_unchanged(manager):
    async def failing_delete():
        raise NotFoundError("Product not found")

    with pytest.raises(NotFoundError, match="Product not found"):
        await manager.execute_soft_delete("product", "p1", failing_delete)


@pytest.mark.asyncio
async def test_atomic_failure_runs_all_rollbacks(manager):
    order = []

    async def atomic_ok():
        order.append("atomic-1")

    async def atomic_fail():
        order.append("atomic-2")
        raise ValueError("cart service down")

    async def atomic_never():
        order.append("atomic-3")

    async def rollback_a():
        order.append("rollback-a")

    async def rollback_b():
        order.append("rollback-b")

    with pytest.raises(OperationFailedError):
        await manager.execute_soft_delete(
            "product",
            "p1",
            _noop_delete,
            SoftDeleteOptions(
                atomic_operations=[atomic_ok, atomic_fail, atomic_never],
                rollback_operations=[rollback_a, rollback_b],
            ),
        )

    assert order == ["atomic-1", "atomic-2", "rollback-b", "rollback-a"]
    assert manager.get_active_tokens_count() == 0


@pytest.mark.asyncio
async def test_rollback_failure_does_not_mask_original_error(manager):
    ran = []

    async def failing_delete():
        raise ValidationError("Product is already deleted")

    async def broken_rollback():
        raise RuntimeError("rollback broke")

    async def good_rollback():
        ran.append("good")

    with pytest.raises(ValidationError, match="already deleted"):
        await manager.execute_soft_delete(
            "product",
            "p1",
            failing_delete,
            SoftDeleteOptions(rollback_operations=[good_rollback, broken_rollback]),
        )
    assert ran == ["good"]


@pytest.mark.asyncio
async def test_undo_runs_rollbacks_forward_after_restore(manager):
    order = []

    async def rollback_a():
        order.append("a")

    async def rollback_b():
        order.append("b")

    async def restore(metadata):
        order.append("restore")

    result = await manager.execute_soft_delete(
        "product",
        "p1",
        _noop_delete,
        SoftDeleteOptions(rollback_operations=[rollback_a, rollback_b]),
    )
    await manager.execute_undo(result.undo_token, restore)

    assert order == ["restore", "a", "b"]


@pytest.mark.asyncio
async def test_failed_undo_keeps_token_for_retry(manager):
    result = await manager.execute_soft_delete("product", "p1", _noop_delete)
    attempts = []

    async def flaky_restore(metadata):
        attempts.append(metadata)
        if len(attempts) == 1:
            raise ConnectionError("database went away")
        return "restored"

    with pytest.raises(OperationFailedError, match="Failed to restore item"):
        await manager.execute_undo(result.undo_token, flaky_restore)
    assert manager.is_valid_undo_token(result.undo_token)

    undo = await manager.execute_undo(result.undo_token, flaky_restore)
    assert undo.restored_item == "restored"
    assert not manager.is_valid_undo_token(result.undo_token)


@pytest.mark.asyncio
async def test_concurrent_undo_restores_once(manager):
    result = await manager.execute_soft_delete("product", "p1", _noop_delete)
    restores = []

    async def slow_restore(metadata):
        restores.append(metadata.entity_id)
        await asyncio.sleep(0.01)
        return metadata.entity_id

    outcomes = await asyncio.gather(
        manager.execute_undo(result.undo_token, slow_restore),
        manager.execute_undo(result.undo_token, slow_restore),
        return_exceptions=True,
    )

    assert restores == ["p1"]
    assert sum(1 for outcome in outcomes if isinstance(outcome, Exception)) == 1
    assert any(isinstance(o, InvalidUndoTokenError) for o in outcomes)


@pytest.mark.asyncio
async def test_metadata_query(manager, clock):
    result = await manager.execute_soft_delete("category", "c1", _noop_delete)

    metadata = manager.get_undo_token_metadata(result.undo_token)

    assert isinstance(metadata, SingleEntityDeletion)
    assert metadata.entity_id == "c1"
    assert metadata.result == {"deleted": True}
    assert metadata.to_dict()["is_bulk"] is False
    assert manager.get_undo_token_metadata("missing") is None


@pytest.mark.asyncio
async def test_cleanup_and_active_count(manager, clock):
    await manager.execute_soft_delete(
        "product", "p1", _noop_delete, SoftDeleteOptions(undo_timeout_ms=100)
    )
    await manager.execute_soft_delete(
        "product", "p2", _noop_delete, SoftDeleteOptions(undo_timeout_ms=10_000)
    )
    clock.advance(200)

    assert manager.cleanup_expired_tokens() == 1
    assert manager.get_active_tokens_count() == 1


@pytest.mark.asyncio
async def test_negative_timeout_rejected_before_any_side_effect(manager):
    calls = []

    async def delete():
        calls.append("delete")

    async def atomic():
        calls.append("atomic")

    async def rollback():
        calls.append("rollback")

    with pytest.raises(ValidationError, match="cannot be negative"):
        await manager.execute_soft_delete(
            "product",
            "p1",
            delete,
            SoftDeleteOptions(
                undo_timeout_ms=-1,
                atomic_operations=[atomic],
                rollback_operations=[rollback],
            ),
        )

    assert calls == []
    assert manager.get_active_tokens_count() == 0


@pytest.mark.asyncio
async def test_negative_timeout_rejected_before_bulk_delete(manager):
    calls = []

    async def bulk_delete(ids):
        calls.append(ids)

    with pytest.raises(ValidationError, match="cannot be negative"):
        await manager.execute_bulk_soft_delete(
            "product", ["a", "b"], bulk_delete, SoftDeleteOptions(undo_timeout_ms=-5)
        )

    assert calls == []

@pytest.mark.asyncio
async def test_tokens_are_unique_within_same_millisecond(manager):
    first = await manager.execute_soft_delete("product", "p1", _noop_delete)
    second = await manager.execute_soft_delete("product", "p1", _noop_delete)

    assert first.undo_token != second.undo_token
