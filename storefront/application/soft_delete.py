"""Soft delete with a time-boxed undo.

A delete runs the caller's write, then its atomic side effects, then mints an
undo token holding the compensating rollback operations. If the delete fails
the rollbacks run in reverse to unwind it; if the delete is later undone they
run in order to compensate for it.
"""

import secrets
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta
from typing import Any, Final

from ..domain.constants import DEFAULT_UNDO_TIMEOUT_MS, UNDO_TOKEN_PREFIX
from ..domain.exceptions import (
    DomainError,
    OperationFailedError,
    UndoTokenKindError,
    ValidationError,
)
from ..domain.undo import (
    BulkEntityDeletion,
    DeletionMetadata,
    RollbackOperation,
    SingleEntityDeletion,
    SoftDeleteOptions,
    SoftDeleteResult,
    UndoEntry,
    UndoResult,
)
from ..logging_config import get_logger
from ..metrics import (
    record_rollback_failure,
    record_soft_delete,
    record_undo_token_consumed,
    record_undo_token_issued,
)
from .undo_store import UndoTokenStore

logger: Final = get_logger(__name__)

RestoreOperation = Callable[[Any], Awaitable[Any]]


def require_entity_type(metadata: DeletionMetadata, entity_type: str) -> None:
    """Reject a token that was minted for another kind of entity."""
    if metadata.entity_type != entity_type:
        raise UndoTokenKindError(
            f"Undo token belongs to a {metadata.entity_type} deletion, "
            f"not a {entity_type} deletion"
        )


class SoftDeleteManager:
    """Wraps delete writes in a uniform result and a reversible undo window."""

    def __init__(
        self,
        store: UndoTokenStore,
        default_undo_timeout_ms: int = DEFAULT_UNDO_TIMEOUT_MS,
    ):
        self.store = store
        self.default_undo_timeout_ms = default_undo_timeout_ms

    def generate_undo_token(self, entity_type: str, entity_id: str) -> str:
        timestamp_ms = int(self.store.now().timestamp() * 1000)
        suffix = secrets.token_hex(6)
        return f"{UNDO_TOKEN_PREFIX}_{entity_type}_{entity_id}_{timestamp_ms}_{suffix}"

    async def execute_soft_delete(
        self,
        entity_type: str,
        entity_id: str,
        delete_operation: Callable[[], Awaitable[Any]],
        options: SoftDeleteOptions | None = None,
    ) -> SoftDeleteResult:
        """Soft delete one entity and, unless disabled, open an undo window.

        Raises:
            ValidationError: negative undo timeout; nothing is called
            DomainError: re-raised unchanged from the delete or an atomic operation
            OperationFailedError: any other failure, after rollbacks have run
        """
        options = options or SoftDeleteOptions()
        timeout_ms = self._resolve_timeout(options)
        logger.debug("Soft deleting", entity_type=entity_type, entity_id=entity_id)

        result = await self._run_delete(
            entity_type=entity_type,
            log_context={"entity_id": entity_id},
            operation=delete_operation,
            options=options,
            failure_message=f"Failed to delete {entity_type}",
        )

        deleted_at = self.store.now()
        metadata = SingleEntityDeletion(
            entity_type=entity_type,
            entity_id=entity_id,
            deleted_at=deleted_at,
            result=result,
        )
        record_soft_delete(entity_type, bulk=False)

        delete_result = SoftDeleteResult(
            success=True,
            message=f"{entity_type} deleted successfully",
            metadata={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "deleted_at": deleted_at,
            },
        )
        if options.include_undo_token:
            self._issue_token(delete_result, entity_id, metadata, options, timeout_ms)

        logger.info(
            "Soft delete completed",
            entity_type=entity_type,
            entity_id=entity_id,
            undo_token=delete_result.undo_token,
        )
        return delete_result

    async def execute_bulk_soft_delete(
        self,
        entity_type: str,
        entity_ids: Sequence[str],
        bulk_delete_operation: Callable[[list[str]], Awaitable[Any]],
        options: SoftDeleteOptions | None = None,
    ) -> SoftDeleteResult:
        """Soft delete many entities with one batched write and one undo token.

        Raises:
            ValidationError: no ids were given or a negative undo
                timeout; nothing is called
            DomainError: re-raised unchanged from the delete or an atomic operation
            OperationFailedError: any other failure, after rollbacks have run
        """
        if not entity_ids:
            raise ValidationError("No entity IDs provided for bulk delete")

        options = options or SoftDeleteOptions()
        timeout_ms = self._resolve_timeout(options)
        ids = list(entity_ids)
        logger.debug("Bulk soft deleting", entity_type=entity_type, count=len(ids))

        async def delete_batch() -> Any:
            return await bulk_delete_operation(list(ids))

        result = await self._run_delete(
            entity_type=entity_type,
            log_context={"count": len(ids)},
            operation=delete_batch,
            options=options,
            failure_message=f"Failed to delete {entity_type}s",
        )

        deleted_at = self.store.now()
        metadata = BulkEntityDeletion(
            entity_type=entity_type,
            entity_ids=tuple(ids),
            deleted_at=deleted_at,
            result=result,
        )
        record_soft_delete(entity_type, bulk=True, count=len(ids))

        delete_result = SoftDeleteResult(
            success=True,
            message=f"{len(ids)} {entity_type}s deleted successfully",
            metadata={
                "entity_type": entity_type,
                "entity_ids": ids,
                "deleted_at": deleted_at,
                "count": len(ids),
            },
        )
        if options.include_undo_token:
            self._issue_token(
                delete_result, f"bulk_{len(ids)}", metadata, options, timeout_ms
            )

        logger.info(
            "Bulk soft delete completed",
            entity_type=entity_type,
            count=len(ids),
            undo_token=delete_result.undo_token,
        )
        return delete_result

    async def execute_undo(
        self,
        token: str,
        restore_operation: RestoreOperation,
    ) -> UndoResult:
        """Restore a single-entity delete.

        The token stays valid if restoring fails, so the caller may retry
        within the window.
        """
        entry = self.store.claim(token)
        if entry.metadata.is_bulk:
            self.store.release(token)
            raise UndoTokenKindError("Token is for a bulk operation")

        restored = await self._run_undo(
            entry, restore_operation, failure_message="Failed to restore item"
        )
        return UndoResult(
            success=True,
            message=f"{entry.metadata.entity_type} restored successfully",
            restored_item=restored,
        )

    async def execute_bulk_undo(
        self,
        token: str,
        bulk_restore_operation: RestoreOperation,
    ) -> UndoResult:
        """Restore a bulk delete with one call to ``bulk_restore_operation``."""
        entry = self.store.claim(token)
        metadata = entry.metadata
        if not isinstance(metadata, BulkEntityDeletion):
            self.store.release(token)
            raise UndoTokenKindError("Token is not for bulk operation")

        restored = await self._run_undo(
            entry, bulk_restore_operation, failure_message="Failed to restore items"
        )
        return UndoResult(
            success=True,
            message=f"{metadata.count} {metadata.entity_type}s restored successfully",
            restored_item=restored,
        )

    def is_valid_undo_token(self, token: str) -> bool:
        return self.store.is_valid(token)

    def get_undo_token_metadata(self, token: str) -> DeletionMetadata | None:
        entry = self.store.get(token)
        return entry.metadata if entry else None

    def cleanup_expired_tokens(self) -> int:
        return self.store.cleanup_expired()

    def get_active_tokens_count(self) -> int:
        return self.store.active_count()

    async def _run_delete(
        self,
        entity_type: str,
        log_context: dict[str, Any],
        operation: Callable[[], Awaitable[Any]],
        options: SoftDeleteOptions,
        failure_message: str,
    ) -> Any:
        try:
            result = await operation()
            for atomic_operation in options.atomic_operations:
                await atomic_operation()
            return result
        except Exception as e:
            logger.error(
                "Soft delete failed",
                entity_type=entity_type,
                error_type=type(e).__name__,
                error=str(e),
                **log_context,
            )
            await self._unwind(entity_type, options.rollback_operations)

            if isinstance(e, DomainError):
                raise
            raise OperationFailedError(failure_message) from e

    async def _unwind(
        self, entity_type: str, rollback_operations: Sequence[RollbackOperation]
    ) -> None:
        """Run rollbacks last-to-first. Failures are logged and never raised."""
        for rollback in reversed(list(rollback_operations)):
            try:
                await rollback()
            except Exception:
                record_rollback_failure(entity_type)
                logger.error(
                    "Rollback failed", entity_type=entity_type, exc_info=True
                )

    def _resolve_timeout(self, options: SoftDeleteOptions) -> int:
        timeout_ms = (
            self.default_undo_timeout_ms
            if options.undo_timeout_ms is None
            else options.undo_timeout_ms
        )
        if timeout_ms < 0:
            raise ValidationError("undo_timeout_ms cannot be negative")
        return timeout_ms

    def _issue_token(
        self,
        delete_result: SoftDeleteResult,
        token_entity_id: str,
        metadata: DeletionMetadata,
        options: SoftDeleteOptions,
        timeout_ms: int,
    ) -> None:
        token = self.generate_undo_token(metadata.entity_type, token_entity_id)
        expires_at: datetime = self.store.now() + timedelta(milliseconds=timeout_ms)

        self.store.add(
            UndoEntry(
                token=token,
                expires_at=expires_at,
                metadata=metadata,
                rollback_operations=tuple(options.rollback_operations),
            ),
            timeout_seconds=timeout_ms / 1000,
        )
        record_undo_token_issued(metadata.entity_type)

        delete_result.undo_token = token
        delete_result.undo_expires_at = expires_at

    async def _run_undo(
        self,
        entry: UndoEntry,
        restore_operation: RestoreOperation,
        failure_message: str,
    ) -> Any:
        entity_type = entry.metadata.entity_type
        try:
            restored = await restore_operation(entry.metadata)
            for rollback in entry.rollback_operations:
                await rollback()
        except Exception as e:
            self.store.release(entry.token)
            logger.error(
                "Undo failed",
                token=entry.token,
                entity_type=entity_type,
                error_type=type(e).__name__,
                error=str(e),
            )
            if isinstance(e, DomainError):
                raise
            raise OperationFailedError(failure_message) from e

        if self.store.consume(entry.token):
            record_undo_token_consumed(entity_type)
        logger.info("Undo completed", token=entry.token, entity_type=entity_type)
        return restored
