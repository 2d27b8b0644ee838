"""
In-process cache of per-role permission snapshots.

Writers invalidate synchronously after committing and before returning, so a
grant change is visible to the next check in the same process. Other worker
processes only see it once their entry expires, so every snapshot carries a
time-to-live (PERMISSION_CACHE_TTL). A generation counter keeps a read that
started before an invalidation from storing the snapshot it loaded.
"""
import threading
import time
from typing import Callable, Optional

from scout_rbac.core import config
from scout_rbac.features.permissions.schemas import RoleSnapshot


class RoleSnapshotCache:
    """
    Map of role_id -> RoleSnapshot.

    Usage:
        token = cache.begin_read()
        snapshot = cache.get(role_id)
        if snapshot is None:
            snapshot = await load(role_id)
            cache.store(snapshot, token)
    """

    def __init__(
        self,
        enabled: bool = True,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enabled = enabled
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshots: dict[str, tuple[RoleSnapshot, float]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def begin_read(self) -> int:
        """Token to pass to store(); a later invalidation makes it stale."""
        return self._generation

    def get(self, role_id: str) -> Optional[RoleSnapshot]:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._snapshots.get(role_id)
            if entry is None:
                return None
            snapshot, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._snapshots[role_id]
                return None
            return snapshot

    def store(self, snapshot: RoleSnapshot, token: int) -> bool:
        """Store a snapshot unless an invalidation happened since begin_read()."""
        if not self.enabled or self.ttl_seconds <= 0:
            return False
        with self._lock:
            if token != self._generation:
                return False
            self._snapshots[snapshot.role_id] = (snapshot, self._clock())
            return True

    def invalidate(self, *role_ids: str) -> None:
        with self._lock:
            self._generation += 1
            for role_id in role_ids:
                self._snapshots.pop(role_id, None)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, role_id: str) -> bool:
        return role_id in self._snapshots


role_cache = RoleSnapshotCache(
    enabled=config.PERMISSION_CACHE_ENABLED,
    ttl_seconds=config.PERMISSION_CACHE_TTL,
)
