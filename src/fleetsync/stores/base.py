"""Structural interfaces for the external stores the engine talks to.

Having protocols here makes it easy to pass test doubles while keeping the
production adapters (`PostgrestStore`, `StorageBucket`) concrete.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from fleetsync._constants import (
    CHECK_VIOLATION_CODE,
    FOREIGN_KEY_VIOLATION_CODE,
    PERMISSION_DENIED_CODE,
    UNIQUE_VIOLATION_CODE,
)
from fleetsync.exceptions import (
    CheckViolationError,
    ForeignKeyViolationError,
    PermissionDeniedError,
    StoreError,
    UniqueViolationError,
)

Row = dict[str, Any]
Filters = Mapping[str, Any]
"""Column filters. A list/tuple/set value means membership, anything else equality."""


class RelationalStore(Protocol):
    """Row-level CRUD with equality and membership filters.

    Every method returns the affected rows. Errors are raised as
    :class:`StoreError` subclasses chosen from the store's error code.
    """

    async def select(
        self,
        table: str,
        *,
        filters: Filters | None = None,
        columns: Sequence[str] | None = None,
    ) -> list[Row]:
        ...

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        ...

    async def update(self, table: str, values: Mapping[str, Any], *, filters: Filters) -> list[Row]:
        ...

    async def delete(self, table: str, *, filters: Filters) -> list[Row]:
        ...


class BlobDeleteStatus(enum.StrEnum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"


class BlobStore(Protocol):
    """Object storage addressed by path, exposing public URLs."""

    async def upload(self, data: bytes, content_type: str, path: str) -> str:
        """Store *data* at *path* and return its public URL."""
        ...

    async def delete(self, url: str) -> BlobDeleteStatus:
        """Delete the object behind a public URL. Raises ``BlobStoreError`` on failure."""
        ...

    def public_url(self, path: str) -> str:
        ...


class IdentityProvider(Protocol):
    """Resolves the authenticated caller's tenant (company) id."""

    async def current_tenant_id(self) -> str | None:
        ...


class StaticIdentity:
    """Identity provider bound to a fixed tenant, e.g. for jobs and tests."""

    def __init__(self, tenant_id: str | None) -> None:
        self._tenant_id = tenant_id

    async def current_tenant_id(self) -> str | None:
        return self._tenant_id


def is_membership(value: Any) -> bool:
    """Whether a filter value means membership rather than equality."""
    return isinstance(value, (list, tuple, set, frozenset))


def raise_for_store_code(
    *,
    table: str,
    code: str,
    message: str,
    hint: str = "",
) -> None:
    """Raise the :class:`StoreError` subclass matching a Postgres error code."""
    text = f"{table} failed: code={code} message={message}"
    if code == UNIQUE_VIOLATION_CODE:
        raise UniqueViolationError(text, code=code, table=table, hint=hint)
    if code == CHECK_VIOLATION_CODE:
        raise CheckViolationError(text, code=code, table=table, hint=hint)
    if code == FOREIGN_KEY_VIOLATION_CODE:
        raise ForeignKeyViolationError(text, code=code, table=table, hint=hint)
    if code == PERMISSION_DENIED_CODE:
        raise PermissionDeniedError(text, code=code, table=table, hint=hint)
    raise StoreError(text, code=code, table=table, hint=hint)
