"""In-memory store of pending undo tokens.

The store is process-local: a token can only be redeemed against the instance
that minted it, and tokens do not survive a restart. Each entry removes itself
when its window elapses; ``cleanup_expired`` sweeps stragglers whose timer was
delayed.
"""

import asyncio
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import Final

from ..domain.exceptions import InvalidUndoTokenError, UndoTokenExpiredError
from ..domain.undo import UndoEntry
from ..logging_config import get_logger
from ..metrics import record_undo_tokens_dropped, record_undo_tokens_expired

logger: Final = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class UndoTokenStore:
    """Owns every pending undo entry and its expiry timer."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._entries: dict[str, UndoEntry] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._claimed: set[str] = set()

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token: object) -> bool:
        return token in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def add(self, entry: UndoEntry, timeout_seconds: float) -> None:
        """Store an entry and arm the timer that removes it after the window."""
        if entry.token in self._entries:
            raise ValueError(f"Undo token {entry.token} already stored")

        self._entries[entry.token] = entry

        loop = asyncio.get_running_loop()
        self._timers[entry.token] = loop.call_later(
            timeout_seconds, self._expire, entry.token
        )

        logger.debug(
            "Stored undo token",
            token=entry.token,
            entity_type=entry.metadata.entity_type,
            expires_at=entry.expires_at.isoformat(),
        )

    def get(self, token: str) -> UndoEntry | None:
        return self._entries.get(token)

    def is_valid(self, token: str) -> bool:
        """Present and not past expiry. Never mutates the store."""
        entry = self._entries.get(token)
        return entry is not None and not entry.is_expired(self.now())

    def claim(self, token: str) -> UndoEntry:
        """Reserve a token for one undo attempt.

        Raises:
            InvalidUndoTokenError: unknown token or an undo already in flight
            UndoTokenExpiredError: the window closed; the entry is removed
        """
        entry = self._entries.get(token)
        if entry is None or token in self._claimed:
            raise InvalidUndoTokenError()

        if entry.is_expired(self.now()):
            self._discard(token)
            record_undo_tokens_expired(1, "active_check")
            logger.info("Rejected expired undo token", token=token)
            raise UndoTokenExpiredError()

        self._claimed.add(token)
        return entry

    def release(self, token: str) -> None:
        """Give a claimed token back after a failed undo so it can be retried."""
        self._claimed.discard(token)

    def consume(self, token: str) -> bool:
        """Remove a claimed token after a successful undo.

        Returns False if the timer already removed it while the undo ran.
        """
        return self._discard(token)

    def cleanup_expired(self) -> int:
        """Remove every entry whose expiry has passed. Returns how many went."""
        now = self.now()
        expired = [
            token for token, entry in self._entries.items() if entry.is_expired(now)
        ]
        for token in expired:
            self._discard(token)

        if expired:
            record_undo_tokens_expired(len(expired), "sweep")
            logger.debug("Swept expired undo tokens", removed=len(expired))
        return len(expired)

    def active_count(self) -> int:
        self.cleanup_expired()
        return len(self._entries)

    def close(self) -> None:
        """Cancel all timers and drop every entry."""
        record_undo_tokens_dropped(len(self._entries))
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._entries.clear()
        self._claimed.clear()

    def _expire(self, token: str) -> None:
        self._timers.pop(token, None)
        entry = self._entries.get(token)
        if entry is None:
            return

        now = self.now()
        if not entry.is_expired(now):
            # Loop time and the clock disagree; wait out the remainder
            remaining = (entry.expires_at - now).total_seconds()
            self._timers[token] = asyncio.get_running_loop().call_later(
                max(remaining, 0.001), self._expire, token
            )
            return

        del self._entries[token]
        self._claimed.discard(token)
        record_undo_tokens_expired(1, "timer")
        logger.debug("Undo window elapsed", token=token)

    def _discard(self, token: str) -> bool:
        removed = self._entries.pop(token, None) is not None
        self._claimed.discard(token)
        handle = self._timers.pop(token, None)
        if handle is not None:
            handle.cancel()
        return removed
