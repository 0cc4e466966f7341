import threading
from contextlib import contextmanager
from typing import Dict, Iterator

import structlog

from courtside.core.errors import ConflictError

logger = structlog.get_logger(__name__)

_registry_lock = threading.Lock()
_tournament_locks: Dict[int, threading.Lock] = {}


def _lock_for(tournament_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _tournament_locks.get(tournament_id)
        if lock is None:
            lock = threading.Lock()
            _tournament_locks[tournament_id] = lock
        return lock


@contextmanager
def tournament_guard(tournament_id: int) -> Iterator[None]:
    """Single writer per tournament within this process.

    Does not wait: a second writer gets a ConflictError instead of queueing
    behind the first one. Row locks taken in the same transaction cover
    writers in other processes.
    """
    lock = _lock_for(tournament_id)
    if not lock.acquire(blocking=False):
        logger.warning("tournament_guard_busy", tournament_id=tournament_id)
        raise ConflictError(f"Another operation is in progress for tournament {tournament_id}.")
    try:
        yield
    finally:
        lock.release()
