"""Value objects describing a pending undo."""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

RollbackOperation = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class SingleEntityDeletion:
    """What was deleted by a single-entity soft delete."""

    entity_type: str
    entity_id: str
    deleted_at: datetime
    result: Any = None

    @property
    def is_bulk(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "deleted_at": self.deleted_at,
            "main_result": self.result,
            "is_bulk": False,
        }


@dataclass(frozen=True)
class BulkEntityDeletion:
    """What was deleted by one batched soft delete."""

    entity_type: str
    entity_ids: tuple[str, ...]
    deleted_at: datetime
    result: Any = None

    @property
    def is_bulk(self) -> bool:
        return True

    @property
    def count(self) -> int:
        return len(self.entity_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "entity_ids": list(self.entity_ids),
            "deleted_at": self.deleted_at,
            "main_result": self.result,
            "is_bulk": True,
            "count": self.count,
        }


DeletionMetadata = SingleEntityDeletion | BulkEntityDeletion


@dataclass(frozen=True)
class UndoEntry:
    """A stored undo opportunity. Never mutated once stored."""

    token: str
    expires_at: datetime
    metadata: DeletionMetadata
    rollback_operations: tuple[RollbackOperation, ...] = ()

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class SoftDeleteOptions:
    """Options for a soft delete.

    ``undo_timeout_ms`` of ``None`` means the manager's configured default.
    """

    undo_timeout_ms: int | None = None
    include_undo_token: bool = True
    atomic_operations: Sequence[RollbackOperation] = field(default_factory=list)
    rollback_operations: Sequence[RollbackOperation] = field(default_factory=list)


@dataclass
class SoftDeleteResult:
    success: bool
    message: str
    undo_token: str | None = None
    undo_expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class UndoResult:
    success: bool
    message: str
    restored_item: Any = None
