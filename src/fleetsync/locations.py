"""Location references and tenant location management.

:class:`LocationResolver` turns the raw id lists sent by the vehicle
form into validated association sets. :class:`LocationService` manages
the location rows themselves (list, create, update, delete, HQ).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, NoReturn

import pydantic

from fleetsync._constants import (
    DEFAULT_LOCATION_COUNTRY,
    HQ_LOCATION_PREFIX,
    LOCATION_ID_PATTERN,
    LOCATIONS_TABLE,
    SENTINEL_LOCATION_MARKERS,
)
from fleetsync._tenancy import require_tenant
from fleetsync._timeout import Operation, TimeoutGuard
from fleetsync.config import FleetSyncConfig
from fleetsync.exceptions import (
    AuthorizationError,
    CheckViolationError,
    ConflictError,
    FieldViolation,
    FleetSyncError,
    LocationValidationError,
    NotFoundError,
    PermissionDeniedError,
    ReferentialError,
    StoreError,
    UniqueViolationError,
)
from fleetsync.models import (
    CustomLocation,
    DeleteResult,
    KnownLocation,
    Location,
    LocationInput,
    LocationRef,
    LocationRole,
    OperationResult,
)
from fleetsync.stores.base import IdentityProvider, RelationalStore

_logger = logging.getLogger(__name__)

_RESOLVE_COLUMNS = ("id", "company_id", "is_pickup", "is_dropoff")


def parse_location_refs(
    raw: Iterable[Any] | None,
    *,
    pattern: str = LOCATION_ID_PATTERN,
    markers: Iterable[str] = SENTINEL_LOCATION_MARKERS,
) -> list[LocationRef]:
    """Classify raw form values into location references.

    Null and blank entries are dropped, sentinel markers become
    :class:`CustomLocation`, values not matching *pattern* are discarded
    and duplicates collapse onto their first occurrence.
    """
    if not raw:
        return []
    matcher = re.compile(pattern)
    sentinels = frozenset(markers)
    refs: list[LocationRef] = []
    seen: set[LocationRef] = set()
    for value in raw:
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        ref: LocationRef
        if text in sentinels:
            ref = CustomLocation(text)
        elif matcher.fullmatch(text):
            ref = KnownLocation(text)
        else:
            _logger.debug("Discarding malformed location id %r", text[:80])
            continue
        if ref not in seen:
            seen.add(ref)
            refs.append(ref)
    return refs


class LocationResolver:
    """Validates caller-supplied location ids against tenant and role.

    Parameters
    ----------
    store : RelationalStore
        Store holding the ``locations`` table.
    guard : TimeoutGuard
        Time budget for the lookup.
    pattern : str
        Canonical id format. Non-matching ids are discarded silently.
    markers : Iterable[str]
        Form placeholders that are never real references.
    """

    def __init__(
        self,
        store: RelationalStore,
        guard: TimeoutGuard,
        *,
        pattern: str = LOCATION_ID_PATTERN,
        markers: Iterable[str] = SENTINEL_LOCATION_MARKERS,
    ) -> None:
        self._store = store
        self._guard = guard
        self._pattern = pattern
        self._markers = frozenset(markers)

    def known_ids(self, raw: Iterable[Any] | None) -> list[str]:
        """Candidate ids in *raw*, sentinels and malformed values removed."""
        refs = parse_location_refs(raw, pattern=self._pattern, markers=self._markers)
        return [ref.location_id for ref in refs if isinstance(ref, KnownLocation)]

    async def resolve(
        self,
        raw: Iterable[Any] | None,
        *,
        tenant_id: str,
        role: LocationRole,
    ) -> frozenset[str]:
        """Return the ids of *raw* that may be associated in *role*.

        All referenced rows are fetched in one call. Every offending id is
        collected (missing, other tenant, role flag not set) before a
        :class:`ReferentialError` is raised. An empty input resolves to
        an empty set.
        """
        ids = self.known_ids(raw)
        if not ids:
            return frozenset()

        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(LOCATIONS_TABLE, filters={"id": ids}, columns=_RESOLVE_COLUMNS),
            f"Failed to validate {role.value} locations. Please try again.",
        )
        found = {str(row.get("id")): row for row in rows}

        invalid: dict[str, list[str]] = {}
        for location_id in ids:
            row = found.get(location_id)
            if row is None:
                invalid.setdefault(location_id, []).append("does not exist")
                continue
            if row.get("company_id") != tenant_id:
                invalid.setdefault(location_id, []).append("wrong company")
            if not row.get(f"is_{role.value}"):
                invalid.setdefault(location_id, []).append(f"not a {role.value} location")

        if invalid:
            _logger.debug("Rejected %s locations: %s", role.value, invalid)
            raise ReferentialError(role.value, invalid)
        return frozenset(ids)


# ------------------------------------------------------------------
# Location management
# ------------------------------------------------------------------


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _coordinate(value: float | None) -> float | None:
    return round(value, 8) if value is not None else None


def parse_location_input(data: LocationInput | Mapping[str, Any]) -> LocationInput:
    """Parse and check caller input for a location."""
    if isinstance(data, LocationInput):
        parsed = data
    else:
        try:
            parsed = LocationInput.model_validate(dict(data))
        except pydantic.ValidationError as exc:
            raise LocationValidationError(
                [
                    FieldViolation(".".join(str(part) for part in error["loc"]) or "location", error["msg"])
                    for error in exc.errors()
                ]
            ) from exc
    if not parsed.name.strip():
        raise LocationValidationError([FieldViolation("name", "Location name is required")])
    return parsed


def location_row(data: LocationInput) -> dict[str, Any]:
    """Column values for a location. Every location serves both roles."""
    return {
        "name": data.name.strip(),
        "address_line_1": _clean(data.address_line_1),
        "address_line_2": _clean(data.address_line_2),
        "city": _clean(data.city),
        "region": _clean(data.region),
        "postal_code": _clean(data.postal_code),
        "country": _clean(data.country) or DEFAULT_LOCATION_COUNTRY,
        "latitude": _coordinate(data.latitude),
        "longitude": _coordinate(data.longitude),
        "is_pickup": True,
        "is_dropoff": True,
        "is_active": data.is_active,
    }


class LocationService:
    """Tenant-scoped location management."""

    def __init__(
        self,
        config: FleetSyncConfig,
        store: RelationalStore,
        identity: IdentityProvider,
    ) -> None:
        self._store = store
        self._identity = identity
        self._guard = TimeoutGuard(config.timeouts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_locations(self) -> OperationResult[list[Location]]:
        """Active locations of the caller's tenant, HQ first, then by name."""
        try:
            locations = await self._list_locations()
        except FleetSyncError as exc:
            return OperationResult[list[Location]].failed(exc)
        return OperationResult[list[Location]].ok(locations)

    async def create_location(self, data: LocationInput | Mapping[str, Any]) -> OperationResult[Location]:
        try:
            location = await self._create_location(parse_location_input(data))
        except FleetSyncError as exc:
            return OperationResult[Location].failed(exc)
        return OperationResult[Location].ok(location, "Location created")

    async def update_location(
        self,
        location_id: str,
        data: LocationInput | Mapping[str, Any],
    ) -> OperationResult[Location]:
        try:
            location = await self._update_location(location_id, parse_location_input(data))
        except FleetSyncError as exc:
            return OperationResult[Location].failed(exc)
        return OperationResult[Location].ok(location, "Location updated")

    async def delete_location(self, location_id: str) -> DeleteResult:
        try:
            await self._delete_location(location_id)
        except FleetSyncError as exc:
            return DeleteResult.failed(exc)
        return DeleteResult.ok("Location deleted")

    async def ensure_hq_location(self, company_name: str) -> OperationResult[Location]:
        """Return the tenant's HQ location, creating ``HQ - <company>`` if missing."""
        try:
            location = await self._ensure_hq_location(company_name)
        except FleetSyncError as exc:
            return OperationResult[Location].failed(exc)
        return OperationResult[Location].ok(location)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _list_locations(self) -> list[Location]:
        tenant_id = await require_tenant(self._identity, self._guard)
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(LOCATIONS_TABLE, filters={"company_id": tenant_id, "is_active": True}),
            "Failed to fetch locations. The request timed out. Please try again.",
        )
        locations = [Location.model_validate(row) for row in rows]
        return sorted(locations, key=lambda loc: (not loc.is_hq, loc.name.lower()))

    async def _find_hq(self, tenant_id: str) -> Location | None:
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(LOCATIONS_TABLE, filters={"company_id": tenant_id, "is_hq": True}),
            "Failed to check for an existing headquarters location. Please try again.",
        )
        return Location.model_validate(rows[0]) if rows else None

    async def _create_location(self, data: LocationInput) -> Location:
        tenant_id = await require_tenant(self._identity, self._guard)
        if data.is_hq and await self._find_hq(tenant_id) is not None:
            raise ConflictError("A headquarters location already exists for this company", field="isHq")

        row = {**location_row(data), "company_id": tenant_id, "is_hq": data.is_hq}
        try:
            inserted = await self._guard.run(
                Operation.INSERT,
                self._store.insert(LOCATIONS_TABLE, [row]),
                "Failed to create location. The request timed out. Please try again.",
            )
        except StoreError as exc:
            _raise_location_store_error(exc, "create")
        if not inserted:
            raise StoreError("Failed to create location: no row returned", table=LOCATIONS_TABLE)
        location = Location.model_validate(inserted[0])
        _logger.debug("Created location %s for company %s", location.id, tenant_id)
        return location

    async def _owned_location(self, location_id: str, tenant_id: str, action: str) -> Location:
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(LOCATIONS_TABLE, filters={"id": location_id}),
            "Failed to verify location. Please try again.",
        )
        if not rows:
            raise NotFoundError(
                f"Location not found or you do not have permission to {action} it",
                resource=LOCATIONS_TABLE,
                resource_id=location_id,
            )
        location = Location.model_validate(rows[0])
        if location.company_id != tenant_id:
            raise AuthorizationError(f"You do not have permission to {action} this location")
        return location

    async def _update_location(self, location_id: str, data: LocationInput) -> Location:
        tenant_id = await require_tenant(self._identity, self._guard)
        await self._owned_location(location_id, tenant_id, "update")
        try:
            updated = await self._guard.run(
                Operation.UPDATE,
                self._store.update(
                    LOCATIONS_TABLE,
                    location_row(data),
                    filters={"id": location_id, "company_id": tenant_id},
                ),
                "Failed to update location. The request timed out. Please try again.",
            )
        except StoreError as exc:
            _raise_location_store_error(exc, "update")
        if not updated:
            raise NotFoundError(
                "Location not found or you do not have permission to update it",
                resource=LOCATIONS_TABLE,
                resource_id=location_id,
            )
        return Location.model_validate(updated[0])

    async def _delete_location(self, location_id: str) -> None:
        tenant_id = await require_tenant(self._identity, self._guard)
        location = await self._owned_location(location_id, tenant_id, "delete")
        if location.is_hq:
            raise ConflictError("Cannot delete headquarters location. Update it instead.", field="isHq")
        try:
            await self._guard.run(
                Operation.DELETE,
                self._store.delete(LOCATIONS_TABLE, filters={"id": location_id, "company_id": tenant_id}),
                "Failed to delete location. The request timed out. Please try again.",
            )
        except StoreError as exc:
            _raise_location_store_error(exc, "delete")

    async def _ensure_hq_location(self, company_name: str) -> Location:
        tenant_id = await require_tenant(self._identity, self._guard)
        existing = await self._find_hq(tenant_id)
        if existing is not None:
            return existing

        name = f"{HQ_LOCATION_PREFIX}{company_name.strip()}"
        row = {
            **location_row(LocationInput(name=name)),
            "company_id": tenant_id,
            "is_hq": True,
        }
        try:
            inserted = await self._guard.run(
                Operation.INSERT,
                self._store.insert(LOCATIONS_TABLE, [row]),
                "Failed to create headquarters location. Please try again.",
            )
        except UniqueViolationError:
            # A concurrent caller created it first.
            _logger.warning("HQ location for company %s already exists (unique constraint)", tenant_id)
            winner = await self._find_hq(tenant_id)
            if winner is None:
                raise
            return winner
        _logger.debug("Created HQ location %r for company %s", name, tenant_id)
        return Location.model_validate(inserted[0])


def _raise_location_store_error(exc: StoreError, action: str) -> NoReturn:
    if isinstance(exc, UniqueViolationError):
        raise ConflictError("A headquarters location already exists for this company", field="isHq") from exc
    if isinstance(exc, CheckViolationError):
        raise LocationValidationError([FieldViolation("location", f"Invalid data: {exc}")]) from exc
    if isinstance(exc, PermissionDeniedError):
        raise AuthorizationError(f"Permission denied. You cannot {action} this location.") from exc
    _logger.error("Location %s failed: %s", action, exc)
    raise exc
