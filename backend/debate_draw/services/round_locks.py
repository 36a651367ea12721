"""
Per-round generation locks.

Two generations for the same round must not interleave inside this
process. Across processes the compare-and-swap on Round.generation_version
catches the loser at commit time.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from debate_draw.exceptions import GenerationConflict

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0


def lock_timeout_seconds() -> float:
    raw = os.getenv("DRAW_LOCK_TIMEOUT_SECONDS")
    if not raw:
        return DEFAULT_LOCK_TIMEOUT_SECONDS
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid DRAW_LOCK_TIMEOUT_SECONDS=%r", raw)
        return DEFAULT_LOCK_TIMEOUT_SECONDS


class RoundLockRegistry:
    """
    One lock per round, created on first use.

    A round's entry is dropped once its last holder releases and nobody
    else is waiting, so the registry only holds rounds in use.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = {}

    def _checkout(self, round_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(round_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[round_id] = lock
            self._users[round_id] = self._users.get(round_id, 0) + 1
            return lock

    def _checkin(self, round_id: int) -> None:
        with self._guard:
            self._users[round_id] -= 1
            if self._users[round_id] == 0:
                del self._users[round_id]
                del self._locks[round_id]

    def tracked_rounds(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, round_id: int, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the round's lock for the duration of the block.

        Raises:
            GenerationConflict: The lock was not acquired within timeout seconds
        """
        wait = lock_timeout_seconds() if timeout is None else timeout
        lock = self._checkout(round_id)
        try:
            if not lock.acquire(timeout=wait):
                logger.warning("LOCK: round %s busy for %.1fs, giving up", round_id, wait)
                raise GenerationConflict(f"Another draw operation is running for round {round_id}")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(round_id)


round_locks = RoundLockRegistry()
