"""
Session-scoped cache of resolved permission maps.

One entry per session id, holding the map and the user it was resolved for.
The first check of a session resolves and stores the map; every later check
reuses it until the entry is invalidated (logout, login of another identity,
rule or membership change) or expires.

Population is compute-once per session: concurrent first checks serialize on
a per-session lock, one of them resolves, the others reuse its result.
Invalidation bumps a per-session generation so a resolution that was already
running when the rules changed is returned to its caller but never stored.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple

from cairn.security.acl.permission_map import EffectivePermissionMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    user_id: int
    permission_map: EffectivePermissionMap
    resolved_at: float


class SessionStore(Protocol):
    def get(self, session_id: str) -> Optional[CacheEntry]:
        ...

    def set(self, session_id: str, entry: CacheEntry) -> None:
        ...

    def delete(self, session_id: str) -> None:
        ...

    def items(self) -> List[Tuple[str, CacheEntry]]:
        ...


class MemorySessionStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, session_id: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(session_id)

    def set(self, session_id: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[session_id] = entry

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def items(self) -> List[Tuple[str, CacheEntry]]:
        with self._lock:
            return list(self._entries.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ResolutionCache:
    def __init__(
        self,
        store: Optional[SessionStore] = None,
        *,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store: SessionStore = store if store is not None else MemorySessionStore()
        self.ttl_seconds = max(int(ttl_seconds or 0), 0)
        self._clock = clock
        self._lock = threading.RLock()
        self._session_locks: Dict[str, threading.Lock] = {}
        self._lock_holders: Dict[str, int] = {}
        self._generations: Dict[str, int] = {}
        self._resolving: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.store.items())

    def _expired(self, entry: CacheEntry) -> bool:
        if not self.ttl_seconds:
            return False
        return self._clock() - entry.resolved_at >= self.ttl_seconds

    @contextmanager
    def _session_lock(self, session_id: str) -> Iterator[None]:
        # Holders are counted so a lock is never dropped while a thread waits on it.
        with self._lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._session_locks[session_id] = lock
            self._lock_holders[session_id] = self._lock_holders.get(session_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._lock:
                remaining = self._lock_holders.get(session_id, 1) - 1
                if remaining:
                    self._lock_holders[session_id] = remaining
                else:
                    self._lock_holders.pop(session_id, None)

    def _release(self, session_id: str) -> bool:
        """Drop the bookkeeping of a session nobody is using; caller holds `_lock`."""
        if session_id in self._resolving or self._lock_holders.get(session_id):
            return False
        if self.store.get(session_id) is not None:
            return False
        self._generations.pop(session_id, None)
        self._session_locks.pop(session_id, None)
        return True

    def _bump(self, session_id: str) -> None:
        self._generations[session_id] = self._generations.get(session_id, 0) + 1
        self.store.delete(session_id)

    def peek(self, session_id: str, user_id: int) -> Optional[EffectivePermissionMap]:
        """Return the cached map if it is usable for `user_id`, dropping it otherwise."""
        entry = self.store.get(session_id)
        if entry is None:
            return None
        if entry.user_id != user_id:
            logger.debug(
                "Session %s switched from user %s to %s; dropping cached permissions",
                session_id,
                entry.user_id,
                user_id,
            )
            self.invalidate(session_id)
            return None
        if self._expired(entry):
            self.invalidate(session_id)
            return None
        return entry.permission_map

    def get_or_resolve(
        self,
        session_id: str,
        user_id: int,
        resolve: Callable[[], EffectivePermissionMap],
    ) -> EffectivePermissionMap:
        cached = self.peek(session_id, user_id)
        if cached is not None:
            return cached

        with self._session_lock(session_id):
            cached = self.peek(session_id, user_id)
            if cached is not None:
                return cached

            with self._lock:
                generation = self._generations.get(session_id, 0)
                self._resolving[session_id] = user_id
            try:
                permission_map = resolve()
            except Exception:
                with self._lock:
                    self._resolving.pop(session_id, None)
                raise

            with self._lock:
                self._resolving.pop(session_id, None)
                if self._generations.get(session_id, 0) == generation:
                    self.store.set(
                        session_id,
                        CacheEntry(
                            user_id=user_id,
                            permission_map=permission_map,
                            resolved_at=self._clock(),
                        ),
                    )
                else:
                    logger.debug(
                        "Permissions of session %s changed during resolution; not caching",
                        session_id,
                    )
            return permission_map

    def invalidate(self, session_id: str) -> None:
        with self._lock:
            self._bump(session_id)
        logger.debug("Invalidated cached permissions of session %s", session_id)

    def forget(self, session_id: str) -> None:
        """Invalidate and release all bookkeeping of an ended session."""
        with self._lock:
            self._bump(session_id)
            self._release(session_id)

    def invalidate_user(self, user_id: int) -> int:
        """Invalidate every session of `user_id`; returns the number of sessions hit."""
        with self._lock:
            sessions = {sid for sid, entry in self.store.items() if entry.user_id == user_id}
            sessions.update(sid for sid, uid in self._resolving.items() if uid == user_id)
            for session_id in sessions:
                self._bump(session_id)
        if sessions:
            logger.debug(
                "Invalidated cached permissions of user %s (%d session(s))",
                user_id,
                len(sessions),
            )
        return len(sessions)

    def invalidate_all(self) -> None:
        with self._lock:
            sessions = {sid for sid, _ in self.store.items()}
            sessions.update(self._resolving)
            for session_id in sessions:
                self._bump(session_id)
        logger.debug("Invalidated cached permissions of all sessions")

    def prune(self) -> int:
        """
        Drop expired entries and the bookkeeping of sessions that no longer
        have an entry; returns how many entries were removed.
        """
        removed = 0
        with self._lock:
            for session_id, entry in self.store.items():
                if self._expired(entry):
                    self._bump(session_id)
                    removed += 1
            for session_id in set(self._generations) | set(self._session_locks):
                self._release(session_id)
        return removed

    def tracked_sessions(self) -> int:
        """Sessions with a lock or generation counter still held in memory."""
        with self._lock:
            return len(set(self._generations) | set(self._session_locks))
