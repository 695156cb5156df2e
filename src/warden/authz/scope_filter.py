"""Row filters derived from an Allow decision.

Data-access code receives a :data:`ScopeFilter` instead of a boolean: a
``FullAccess`` filter leaves queries untouched, an ``OwnAccess`` filter
restricts them to records owned by the principal.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeAlias, TypeVar
from uuid import UUID

from sqlalchemy import Select

from warden.authz.types import Allow, Scope

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class FullAccess:
    """Every record in the tenant is visible."""

    def permits(self, owner_id: UUID | None) -> bool:
        return True

    def apply_to_statement(self, stmt: Select, owner_column: Any) -> Select:
        return stmt


@dataclass(frozen=True, slots=True)
class OwnAccess:
    """Only records owned by ``owner_id`` are visible.

    Attributes:
        owner_id: The principal's user id
    """

    owner_id: UUID

    def permits(self, owner_id: UUID | None) -> bool:
        return owner_id is not None and owner_id == self.owner_id

    def apply_to_statement(self, stmt: Select, owner_column: Any) -> Select:
        """Add ``WHERE owner_column = owner_id`` to a select."""
        return stmt.where(owner_column == self.owner_id)


ScopeFilter: TypeAlias = FullAccess | OwnAccess


def scope_filter_for(allow: Allow) -> ScopeFilter:
    """Build the row filter matching an Allow decision.

    Raises:
        ValueError: If an ``own`` allow carries no owner id
    """
    if allow.scope is Scope.FULL:
        return FullAccess()
    if allow.owner_id is None:
        raise ValueError("own scope requires an owner_id")
    return OwnAccess(owner_id=allow.owner_id)


def apply_scope_filter(
    rows: Iterable[T],
    scope_filter: ScopeFilter,
    owner_of: Callable[[T], UUID | None],
) -> list[T]:
    """Filter in-memory rows by owner.

    Args:
        rows: Candidate records
        scope_filter: Filter from :func:`scope_filter_for`
        owner_of: Returns the owning user id of a record (None if unowned)
    """
    return [row for row in rows if scope_filter.permits(owner_of(row))]
