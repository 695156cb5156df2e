"""Caching layer for role store lookups.

Role, grant and assignment lookups sit on the hot path of every request.
``CachingRoleStore`` wraps any ``RoleStore`` and caches, per user, the
complete :class:`~warden.authz.store.UserRoles` a decision needs, read from a
single view of the wrapped store. Entries live for at most ``ttl_seconds``;
that TTL is the documented upper bound on how stale an authorization
decision may be after a grant change, unless the writer calls one of the
``invalidate_*`` methods.

Because a cached entry was loaded from one view, a decision served from the
cache never combines assignments and grants from different versions of the
data.
"""

import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass
from uuid import UUID

from warden.authz.store import RoleStore, UserRoles, load_user_roles
from warden.authz.types import PermissionGrant, Role
from warden.config.settings import Settings
from warden.core.logging import get_logger
from warden.observability.metrics import record_role_cache_lookup

logger = get_logger(__name__)

USER_ROLES = "user_roles"


@dataclass
class RoleCacheConfig:
    """Configuration for the role store cache.

    Attributes:
        enabled: Whether caching is enabled
        ttl_seconds: Maximum age of a cached entry
        max_entries: Maximum number of users kept
    """

    enabled: bool = True
    ttl_seconds: float = 300.0
    max_entries: int = 10_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "RoleCacheConfig":
        """Create configuration from application settings."""
        return cls(
            enabled=settings.role_cache_enabled,
            ttl_seconds=float(settings.role_cache_ttl_seconds),
        )


@dataclass(frozen=True, slots=True)
class CachedEntry:
    """A cached user role set.

    Attributes:
        value: The user's roles as loaded from the wrapped store
        expires_at: Monotonic deadline after which the entry is stale
    """

    value: UserRoles
    expires_at: float


@dataclass
class CacheStats:
    """Statistics about cache performance."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    invalidations: int = 0
    discarded_loads: int = 0
    entries: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class CachingRoleStore:
    """Role store decorator with TTL caching and explicit invalidation.

    Only user role sets are cached. Direct ``get_role``, ``get_grants`` and
    ``is_role_active`` calls go to the wrapped store; decisions read roles
    through :meth:`view`, which answers them from the cached set.

    Errors raised by the wrapped store propagate unchanged and are never
    cached, so a transient outage does not outlive the outage. A load that
    was in flight when an ``invalidate_*`` or ``clear`` call happened is
    returned to its caller but not cached.

    Example:
        store = CachingRoleStore(SqlRoleStore(sessionmaker), RoleCacheConfig(ttl_seconds=60))
        ...
        # after changing a user's roles
        store.invalidate_user(user_id)
    """

    def __init__(
        self,
        backend: RoleStore,
        config: RoleCacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.config = config or RoleCacheConfig()
        self._clock = clock
        # Insertion order; with a fixed TTL the oldest entry expires first
        self._entries: dict[UUID, CachedEntry] = {}
        self._generation = 0
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        """Get current cache statistics."""
        self._stats.entries = len(self._entries)
        return self._stats

    # ------------------------------------------------------------------
    # RoleStore protocol
    # ------------------------------------------------------------------

    async def get_roles_for_user(self, user_id: UUID) -> frozenset[UUID]:
        """Return the user's role ids, cached."""
        return (await self.get_user_roles(user_id)).role_ids

    async def get_role(self, role_id: UUID) -> Role | None:
        return await self.backend.get_role(role_id)

    async def get_grants(self, role_id: UUID) -> frozenset[PermissionGrant]:
        return await self.backend.get_grants(role_id)

    async def is_role_active(self, role_id: UUID) -> bool:
        return await self.backend.is_role_active(role_id)

    def view(self) -> AbstractAsyncContextManager[RoleStore]:
        """Open a view that answers role lookups from the cached user sets."""
        return nullcontext(_CachedView(self))

    # ------------------------------------------------------------------
    # User role sets
    # ------------------------------------------------------------------

    async def get_user_roles(self, user_id: UUID) -> UserRoles:
        """Return everything a decision reads about the user's roles, cached."""
        if not self.config.enabled:
            return await self._load(user_id)

        entry = self._entries.get(user_id)
        if entry is not None and entry.expires_at > self._clock():
            self._stats.hits += 1
            record_role_cache_lookup(USER_ROLES, hit=True)
            return entry.value

        if entry is not None:
            self._stats.expirations += 1
            del self._entries[user_id]

        self._stats.misses += 1
        record_role_cache_lookup(USER_ROLES, hit=False)

        generation = self._generation
        value = await self._load(user_id)
        if generation == self._generation:
            expires_at = self._clock() + self.config.ttl_seconds
            self._store(user_id, CachedEntry(value=value, expires_at=expires_at))
        else:
            self._stats.discarded_loads += 1
            logger.debug("role_cache_load_discarded", user_id=str(user_id))
        return value

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate_user(self, user_id: UUID) -> None:
        """Drop the cached roles of a user."""
        self._remove(lambda uid, _: uid == user_id)
        logger.info("role_cache_user_invalidated", user_id=str(user_id))

    def invalidate_role(self, role_id: UUID) -> None:
        """Drop the cached role sets of every user holding the role."""
        self._remove(lambda _, entry: role_id in entry.value.role_ids)
        logger.info("role_cache_role_invalidated", role_id=str(role_id))

    def clear(self) -> None:
        """Drop every cached entry."""
        self._generation += 1
        self._stats.invalidations += len(self._entries)
        self._entries = {}
        logger.info("role_cache_cleared")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, user_id: UUID) -> UserRoles:
        async with self.backend.view() as store:
            return await load_user_roles(store, user_id)

    def _store(self, user_id: UUID, entry: CachedEntry) -> None:
        self._entries.pop(user_id, None)
        self._entries[user_id] = entry
        while len(self._entries) > self.config.max_entries:
            del self._entries[next(iter(self._entries))]

    def _remove(self, predicate: Callable[[UUID, CachedEntry], bool]) -> None:
        self._generation += 1
        stale = [user_id for user_id, entry in self._entries.items() if predicate(user_id, entry)]
        for user_id in stale:
            del self._entries[user_id]
        self._stats.invalidations += len(stale)


class _CachedView:
    """Read view over a CachingRoleStore.

    Looking up a user pins that user's cached role set; lookups of the
    user's roles are then answered from the pinned set. Other roles fall
    through to the wrapped store.
    """

    def __init__(self, cache: CachingRoleStore):
        self._cache = cache
        self._pinned: dict[UUID, UserRoles] = {}

    def view(self) -> AbstractAsyncContextManager[RoleStore]:
        return nullcontext(self)

    async def get_roles_for_user(self, user_id: UUID) -> frozenset[UUID]:
        user_roles = await self._cache.get_user_roles(user_id)
        for role_id in user_roles.role_ids:
            self._pinned[role_id] = user_roles
        return user_roles.role_ids

    async def get_role(self, role_id: UUID) -> Role | None:
        user_roles = self._pinned.get(role_id)
        if user_roles is None:
            return await self._cache.backend.get_role(role_id)
        return user_roles.roles.get(role_id)

    async def get_grants(self, role_id: UUID) -> frozenset[PermissionGrant]:
        user_roles = self._pinned.get(role_id)
        if user_roles is None:
            return await self._cache.backend.get_grants(role_id)
        return user_roles.grants.get(role_id, frozenset())

    async def is_role_active(self, role_id: UUID) -> bool:
        user_roles = self._pinned.get(role_id)
        if user_roles is None:
            return await self._cache.backend.is_role_active(role_id)
        return role_id in user_roles.active
