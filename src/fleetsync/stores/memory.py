"""In-process stores mirroring the hosted schema's constraints.

Used for tests and local runs. The relational store enforces what the
hosted database enforces for the three engine tables, and reports
violations with the same Postgres error codes so the service's error
mapping is exercised unchanged.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from fleetsync._constants import (
    CHECK_VIOLATION_CODE,
    DEFAULT_LOCATION_COUNTRY,
    FOREIGN_KEY_VIOLATION_CODE,
    LOCATIONS_TABLE,
    MAX_SEATS,
    MIN_MODEL_YEAR,
    MIN_SEATS,
    UNIQUE_VIOLATION_CODE,
    VEHICLE_LOCATIONS_TABLE,
    VEHICLES_TABLE,
)
from fleetsync.exceptions import BlobStoreError
from fleetsync.stores.base import BlobDeleteStatus, Filters, Row, is_membership, raise_for_store_code

_logger = logging.getLogger(__name__)

_ALLOWED_VALUES: dict[str, frozenset[str]] = {
    "transmission": frozenset({"automatic", "manual"}),
    "fuel_type": frozenset({"petrol", "diesel", "electric", "hybrid"}),
    "status": frozenset({"active", "maintenance", "retired"}),
}

_COLUMN_DEFAULTS: dict[str, dict[str, Any]] = {
    VEHICLES_TABLE: {"status": "active", "image_urls": []},
    LOCATIONS_TABLE: {
        "country": DEFAULT_LOCATION_COUNTRY,
        "is_pickup": True,
        "is_dropoff": True,
        "is_hq": False,
        "is_active": True,
    },
}


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _matches(row: Mapping[str, Any], filters: Filters | None) -> bool:
    if not filters:
        return True
    for column, expected in filters.items():
        actual = row.get(column)
        if is_membership(expected):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _project(row: Row, columns: Sequence[str] | None) -> Row:
    if not columns:
        return copy.deepcopy(row)
    return {column: copy.deepcopy(row.get(column)) for column in columns}


class MemoryRelationalStore:
    """Dict-backed implementation of :class:`~fleetsync.stores.base.RelationalStore`.

    Enforced rules:

    * ``vehicles``: ``(company_id, license_plate)`` unique, check
      constraints on year, seats, daily rate, deposit and the enum columns.
    * ``locations``: at most one ``is_hq`` row per company.
    * ``vehicle_locations``: foreign keys to both parents, unique
      ``(vehicle_id, location_id, role)``, cascade on vehicle delete.
    """

    def __init__(self) -> None:
        self._tables: dict[str, list[Row]] = {
            VEHICLES_TABLE: [],
            LOCATIONS_TABLE: [],
            VEHICLE_LOCATIONS_TABLE: [],
        }
        self._lock = asyncio.Lock()

    def rows(self, table: str) -> list[Row]:
        """Snapshot of every row in *table*."""
        return copy.deepcopy(self._tables.setdefault(table, []))

    def seed(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """Load rows without constraint checks."""
        seeded = [self._with_defaults(table, row) for row in rows]
        self._tables.setdefault(table, []).extend(seeded)
        return copy.deepcopy(seeded)

    # ------------------------------------------------------------------
    # RelationalStore
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        *,
        filters: Filters | None = None,
        columns: Sequence[str] | None = None,
    ) -> list[Row]:
        return [_project(row, columns) for row in self._tables.setdefault(table, []) if _matches(row, filters)]

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        async with self._lock:
            existing = self._tables.setdefault(table, [])
            staged: list[Row] = []
            for row in rows:
                candidate = self._with_defaults(table, row)
                self._check(table, candidate, others=[*existing, *staged])
                staged.append(candidate)
            existing.extend(staged)
            _logger.debug("Inserted %d row(s) into %s", len(staged), table)
            return copy.deepcopy(staged)

    async def update(self, table: str, values: Mapping[str, Any], *, filters: Filters) -> list[Row]:
        async with self._lock:
            existing = self._tables.setdefault(table, [])
            targets = [index for index, row in enumerate(existing) if _matches(row, filters)]
            updated: dict[int, Row] = {}
            for index in targets:
                candidate = {**existing[index], **copy.deepcopy(dict(values)), "updated_at": _now()}
                others = [row for i, row in enumerate(existing) if i != index and i not in updated]
                others.extend(updated.values())
                self._check(table, candidate, others=others)
                updated[index] = candidate
            for index, row in updated.items():
                existing[index] = row
            return copy.deepcopy(list(updated.values()))

    async def delete(self, table: str, *, filters: Filters) -> list[Row]:
        async with self._lock:
            existing = self._tables.setdefault(table, [])
            removed = [row for row in existing if _matches(row, filters)]
            self._tables[table] = [row for row in existing if not _matches(row, filters)]
            if table == VEHICLES_TABLE and removed:
                vehicle_ids = {row["id"] for row in removed}
                junction = self._tables[VEHICLE_LOCATIONS_TABLE]
                self._tables[VEHICLE_LOCATIONS_TABLE] = [
                    row for row in junction if row.get("vehicle_id") not in vehicle_ids
                ]
            if table == LOCATIONS_TABLE and removed:
                location_ids = {row["id"] for row in removed}
                junction = self._tables[VEHICLE_LOCATIONS_TABLE]
                self._tables[VEHICLE_LOCATIONS_TABLE] = [
                    row for row in junction if row.get("location_id") not in location_ids
                ]
            return copy.deepcopy(removed)

    # ------------------------------------------------------------------
    # Constraints
    # ------------------------------------------------------------------

    @staticmethod
    def _with_defaults(table: str, row: Mapping[str, Any]) -> Row:
        candidate = copy.deepcopy({**_COLUMN_DEFAULTS.get(table, {}), **dict(row)})
        if table != VEHICLE_LOCATIONS_TABLE:
            candidate.setdefault("id", str(uuid.uuid4()))
        stamp = _now()
        candidate.setdefault("created_at", stamp)
        candidate.setdefault("updated_at", stamp)
        return candidate

    def _check(self, table: str, row: Row, *, others: Sequence[Row]) -> None:
        if table == VEHICLES_TABLE:
            self._check_vehicle(row, others)
        elif table == LOCATIONS_TABLE:
            self._check_location(row, others)
        elif table == VEHICLE_LOCATIONS_TABLE:
            self._check_association(row, others)

    @staticmethod
    def _check_vehicle(row: Row, others: Sequence[Row]) -> None:
        for other in others:
            if other.get("id") == row.get("id"):
                raise_for_store_code(
                    table=VEHICLES_TABLE,
                    code=UNIQUE_VIOLATION_CODE,
                    message='duplicate key value violates unique constraint "vehicles_pkey"',
                )
            if (
                other.get("company_id") == row.get("company_id")
                and other.get("license_plate") == row.get("license_plate")
            ):
                raise_for_store_code(
                    table=VEHICLES_TABLE,
                    code=UNIQUE_VIOLATION_CODE,
                    message='duplicate key value violates unique constraint "vehicles_company_id_license_plate_key"',
                )

        def violated(constraint: str) -> None:
            raise_for_store_code(
                table=VEHICLES_TABLE,
                code=CHECK_VIOLATION_CODE,
                message=f'new row for relation "vehicles" violates check constraint "vehicles_{constraint}_check"',
            )

        year = row.get("year")
        if year is not None and year < MIN_MODEL_YEAR:
            violated("year")
        seats = row.get("seats")
        if seats is not None and not MIN_SEATS <= seats <= MAX_SEATS:
            violated("seats")
        daily_rate = row.get("daily_rate")
        if daily_rate is not None and Decimal(str(daily_rate)) <= 0:
            violated("daily_rate")
        deposit = row.get("deposit_required")
        if deposit is not None and Decimal(str(deposit)) < 0:
            violated("deposit_required")
        for column, allowed in _ALLOWED_VALUES.items():
            value = row.get(column)
            if value is not None and value not in allowed:
                violated(column)

    @staticmethod
    def _check_location(row: Row, others: Sequence[Row]) -> None:
        if not row.get("is_hq"):
            return
        for other in others:
            if other.get("is_hq") and other.get("company_id") == row.get("company_id"):
                raise_for_store_code(
                    table=LOCATIONS_TABLE,
                    code=UNIQUE_VIOLATION_CODE,
                    message='duplicate key value violates unique constraint "locations_one_hq_per_company"',
                )

    def _check_association(self, row: Row, others: Sequence[Row]) -> None:
        vehicle_ids = {vehicle["id"] for vehicle in self._tables[VEHICLES_TABLE]}
        location_ids = {location["id"] for location in self._tables[LOCATIONS_TABLE]}
        if row.get("vehicle_id") not in vehicle_ids:
            raise_for_store_code(
                table=VEHICLE_LOCATIONS_TABLE,
                code=FOREIGN_KEY_VIOLATION_CODE,
                message='insert violates foreign key constraint "vehicle_locations_vehicle_id_fkey"',
            )
        if row.get("location_id") not in location_ids:
            raise_for_store_code(
                table=VEHICLE_LOCATIONS_TABLE,
                code=FOREIGN_KEY_VIOLATION_CODE,
                message='insert violates foreign key constraint "vehicle_locations_location_id_fkey"',
            )
        if row.get("role") not in {"pickup", "dropoff"}:
            raise_for_store_code(
                table=VEHICLE_LOCATIONS_TABLE,
                code=CHECK_VIOLATION_CODE,
                message='new row for relation "vehicle_locations" violates check constraint "vehicle_locations_role_check"',
            )
        key = (row.get("vehicle_id"), row.get("location_id"), row.get("role"))
        for other in others:
            if (other.get("vehicle_id"), other.get("location_id"), other.get("role")) == key:
                raise_for_store_code(
                    table=VEHICLE_LOCATIONS_TABLE,
                    code=UNIQUE_VIOLATION_CODE,
                    message='duplicate key value violates unique constraint "vehicle_locations_pkey"',
                )


class MemoryBlobStore:
    """Dict-backed implementation of :class:`~fleetsync.stores.base.BlobStore`."""

    def __init__(self, base_url: str = "memory://vehicle-images") -> None:
        self._base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[str, bytes]] = {}
        """Stored objects keyed by path: ``(content_type, data)``."""

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def path_for(self, url: str) -> str | None:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix) :]

    async def upload(self, data: bytes, content_type: str, path: str) -> str:
        key = path.lstrip("/")
        if key in self.objects:
            raise BlobStoreError(f"Object already exists: {key}", path=key, status_code=409)
        self.objects[key] = (content_type, bytes(data))
        return self.public_url(key)

    async def delete(self, url: str) -> BlobDeleteStatus:
        path = self.path_for(url)
        if path is None:
            raise BlobStoreError(f"URL does not belong to this bucket: {url}", path=url, status_code=400)
        if self.objects.pop(path, None) is None:
            return BlobDeleteStatus.NOT_FOUND
        return BlobDeleteStatus.DELETED
