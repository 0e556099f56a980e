"""
Per-tournament serialization of mutating operations.

Slot regeneration (delete then insert) and rescheduling (free then bind) are
multi-write sequences. Callers wrap them in tournament_lock() so two requests
for the same tournament never interleave; different tournaments proceed in
parallel.

A registry entry lives only while some thread holds or waits for it, so the
registry never outgrows the tournaments currently being mutated.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_locks: Dict[int, threading.RLock] = {}
# Threads holding or waiting on each lock (re-entrant holds count again)
_users: Dict[int, int] = {}


def _checkout(tournament_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _locks.get(tournament_id)
        if lock is None:
            lock = threading.RLock()
            _locks[tournament_id] = lock
        _users[tournament_id] = _users.get(tournament_id, 0) + 1
        return lock


def _checkin(tournament_id: int) -> None:
    with _registry_lock:
        _users[tournament_id] -= 1
        if not _users[tournament_id]:
            del _users[tournament_id]
            del _locks[tournament_id]


@contextmanager
def tournament_lock(tournament_id: int) -> Iterator[None]:
    """Hold the mutation lock for one tournament (re-entrant per thread)."""
    lock = _checkout(tournament_id)
    try:
        with lock:
            yield
    finally:
        _checkin(tournament_id)
