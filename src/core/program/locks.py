"""
Per-player write serialisation.

Program state is updated by read-modify-write: load the row, apply the state
machine, write the row back. Two completions for the same player racing
through that sequence would lose an increment of
overspeed_sessions_in_current_phase, so every write for a player runs while
holding that player's lock.

These locks are process-local. With several worker processes the store's
own row locking is what serialises writers across processes.
"""

import logging
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Iterator, Optional
from weakref import WeakValueDictionary

logger = logging.getLogger(__name__)


class PlayerLockTimeout(Exception):
    """Raised when a player's lock could not be acquired in time."""

    def __init__(self, player_id: str, timeout_s: float) -> None:
        super().__init__(
            f"Timed out after {timeout_s}s waiting for program state lock of player {player_id}"
        )
        self.player_id = player_id
        self.timeout_s = timeout_s


class PlayerLockRegistry:
    """
    One re-entrant lock per player id.

    Re-entrant so that an operation holding the lock can call another
    operation that takes it again without deadlocking.

    Entries are weak: a player's lock is dropped once no caller holds or
    waits on it, so the registry only keeps players with writes in flight.
    """

    def __init__(self, default_timeout_s: Optional[float] = None) -> None:
        self._default_timeout_s = default_timeout_s
        self._locks: WeakValueDictionary[str, RLock] = WeakValueDictionary()
        self._guard = Lock()

    def _lock_for(self, player_id: str) -> RLock:
        with self._guard:
            lock = self._locks.get(player_id)
            if lock is None:
                lock = RLock()
                self._locks[player_id] = lock
            return lock

    @contextmanager
    def hold(self, player_id: str, timeout_s: Optional[float] = None) -> Iterator[None]:
        """
        Hold the player's lock for the duration of the block.

        Raises PlayerLockTimeout if the lock is not acquired within timeout_s
        (or the registry default). None waits indefinitely.

        Usage:
            with locks.hold(player_id):
                state = repo.get(player_id)
                repo.save(transform(state))
        """
        timeout = self._default_timeout_s if timeout_s is None else timeout_s
        lock = self._lock_for(player_id)

        if timeout is None:
            acquired = lock.acquire()
        else:
            acquired = lock.acquire(timeout=max(float(timeout), 0.0))

        if not acquired:
            logger.warning(
                "Program state lock timeout",
                extra={"player_id": player_id, "timeout_s": timeout}
            )
            raise PlayerLockTimeout(player_id, timeout)

        try:
            yield
        finally:
            lock.release()
