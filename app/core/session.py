import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from core.cache import CollectionCache
from core.prometheus_metrics import prometheus_collector

logger = logging.getLogger(__name__)

COLLECTIONS = ("vehicles", "drivers", "transactions", "trips")

# Stores untouched for this long are evicted; the next request reloads from the database
IDLE_TIMEOUT_SECONDS = 30 * 60


class SessionEvent(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    USER_UPDATED = "user_updated"


class SessionStore:
    """
    Per-auth-session state: who is signed in, their profile snapshot and the
    cached domain collections.

    `handle_auth_state_change` is the only method that changes identity. Every
    identity change drops the caches and bumps `generation`, so a collection
    operation that started under an older generation knows not to touch the cache.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.user_id: Optional[str] = None
        self.profile: Optional[Any] = None
        self.generation = 0
        self.last_seen = 0.0
        self._caches: Dict[str, CollectionCache] = {name: CollectionCache(name) for name in COLLECTIONS}
        self._locks: Dict[str, asyncio.Lock] = {name: asyncio.Lock() for name in COLLECTIONS}

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def cache(self, name: str) -> CollectionCache:
        return self._caches[name]

    def lock(self, name: str) -> asyncio.Lock:
        return self._locks[name]

    def handle_auth_state_change(self, event: SessionEvent, user_id: Optional[str] = None, profile: Any = None):
        if event == SessionEvent.SIGNED_OUT:
            self._reset(None)
            self.profile = None
            logger.info("Session signed out", extra={'session_id': self.session_id})
            return

        if user_id is None:
            raise ValueError(f"{event.value} requires a user id")

        if user_id != self.user_id:
            self._reset(user_id)
            logger.info("Session identity changed", extra={'session_id': self.session_id, 'owner_id': user_id})

        if profile is not None:
            self.profile = profile

    def _reset(self, user_id: Optional[str]):
        for cache in self._caches.values():
            cache.invalidate()
        self.user_id = user_id
        self.generation += 1


class SessionRegistry:
    """Process-wide map of auth session id -> SessionStore.

    Stores idle for longer than `idle_timeout_seconds` are pruned on every
    `get`, so abandoned sessions do not keep their caches in memory.
    """

    def __init__(self, idle_timeout_seconds: float = IDLE_TIMEOUT_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout_seconds = idle_timeout_seconds
        self._clock = clock
        self._stores: Dict[str, SessionStore] = {}

    def get(self, session_id: str) -> SessionStore:
        now = self._clock()
        self.prune(now)
        store = self._stores.get(session_id)
        if store is None:
            store = self._stores[session_id] = SessionStore(session_id)
            prometheus_collector.update_active_sessions(len(self._stores))
        store.last_seen = now
        return store

    def prune(self, now: Optional[float] = None) -> int:
        """Drops every store idle past the timeout; returns how many went."""
        cutoff = (self._clock() if now is None else now) - self.idle_timeout_seconds
        stale = [session_id for session_id, store in self._stores.items() if store.last_seen < cutoff]
        for session_id in stale:
            self.drop(session_id)
        if stale:
            logger.info("Evicted idle session stores", extra={'evicted': len(stale), 'remaining': len(self._stores)})
        return len(stale)

    def drop(self, session_id: str) -> None:
        store = self._stores.pop(session_id, None)
        if store is not None:
            store.handle_auth_state_change(SessionEvent.SIGNED_OUT)
            prometheus_collector.update_active_sessions(len(self._stores))

    def clear(self) -> None:
        for session_id in list(self._stores):
            self.drop(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._stores

    def __len__(self) -> int:
        return len(self._stores)


# Global instance
session_registry = SessionRegistry()
