from __future__ import annotations

from typing import Any

import pytest
from _helpers import TENANT_A, TENANT_B

from fleetsync._timeout import TimeoutGuard
from fleetsync.config import FleetSyncConfig, OperationTimeouts
from fleetsync.exceptions import ErrorKind, ReferentialError
from fleetsync.locations import LocationResolver, LocationService, parse_location_refs
from fleetsync.models import CustomLocation, KnownLocation, LocationRole
from fleetsync.stores import MemoryRelationalStore, StaticIdentity


class _CountingStore(MemoryRelationalStore):
    def __init__(self) -> None:
        super().__init__()
        self.selects: list[tuple[str, Any]] = []

    async def select(self, table: str, *, filters: Any = None, columns: Any = None) -> list[dict[str, Any]]:
        self.selects.append((table, filters))
        return await super().select(table, filters=filters, columns=columns)


def _resolver(store: MemoryRelationalStore) -> LocationResolver:
    return LocationResolver(store, TimeoutGuard(OperationTimeouts()))


def test_parse_location_refs_filters_and_tags_values() -> None:
    refs = parse_location_refs([None, "", "  ", "CUSTOM_PICKUP", "loc-1", "loc-1", "bad id!", " loc-3 "])
    assert refs == [CustomLocation("CUSTOM_PICKUP"), KnownLocation("loc-1"), KnownLocation("loc-3")]


def test_parse_location_refs_accepts_uuids() -> None:
    uuid_id = "3f2b8c1e-4a6d-4e0b-9d7a-2c5e8f1a9b30"
    assert parse_location_refs([uuid_id]) == [KnownLocation(uuid_id)]


@pytest.mark.asyncio
async def test_resolve_returns_valid_ids_and_is_idempotent(store: MemoryRelationalStore) -> None:
    resolver = _resolver(store)

    first = await resolver.resolve(["loc-1", "CUSTOM_PICKUP"], tenant_id=TENANT_A, role=LocationRole.PICKUP)
    second = await resolver.resolve(["loc-1", "CUSTOM_PICKUP"], tenant_id=TENANT_A, role=LocationRole.PICKUP)

    assert first == second == frozenset({"loc-1"})


@pytest.mark.asyncio
async def test_resolve_collects_every_offending_id(store: MemoryRelationalStore) -> None:
    resolver = _resolver(store)

    with pytest.raises(ReferentialError) as excinfo:
        await resolver.resolve(
            ["loc-1", "loc-2", "loc-3", "loc-9"],
            tenant_id=TENANT_A,
            role=LocationRole.PICKUP,
        )

    assert excinfo.value.invalid == {
        "loc-2": ["wrong company"],
        "loc-3": ["not a pickup location"],
        "loc-9": ["does not exist"],
    }
    assert "loc-2" in str(excinfo.value)
    assert excinfo.value.kind == ErrorKind.REFERENTIAL


@pytest.mark.asyncio
async def test_resolve_fetches_in_one_round_trip() -> None:
    store = _CountingStore()
    store.seed("locations", [{"id": f"loc-{i}", "company_id": TENANT_A} for i in range(5)])

    ids = await _resolver(store).resolve([f"loc-{i}" for i in range(5)], tenant_id=TENANT_A, role=LocationRole.DROPOFF)

    assert ids == frozenset(f"loc-{i}" for i in range(5))
    assert len(store.selects) == 1


@pytest.mark.asyncio
async def test_resolve_empty_and_sentinel_only_lists_skip_the_store() -> None:
    store = _CountingStore()
    resolver = _resolver(store)

    assert await resolver.resolve(None, tenant_id=TENANT_A, role=LocationRole.PICKUP) == frozenset()
    assert await resolver.resolve([], tenant_id=TENANT_A, role=LocationRole.PICKUP) == frozenset()
    assert await resolver.resolve(["CUSTOM_DROPOFF", " "], tenant_id=TENANT_A, role=LocationRole.DROPOFF) == frozenset()
    assert store.selects == []


# ------------------------------------------------------------------
# LocationService
# ------------------------------------------------------------------


def _service(store: MemoryRelationalStore, tenant_id: str | None = TENANT_A) -> LocationService:
    return LocationService(FleetSyncConfig(), store, StaticIdentity(tenant_id))


@pytest.mark.asyncio
async def test_list_locations_orders_hq_first_then_by_name(store: MemoryRelationalStore) -> None:
    store.seed(
        "locations",
        [
            {"id": "loc-hq", "company_id": TENANT_A, "name": "Zeta HQ", "is_hq": True},
            {"id": "loc-old", "company_id": TENANT_A, "name": "Closed", "is_active": False},
        ],
    )

    result = await _service(store).list_locations()

    assert result.success
    assert [loc.id for loc in result.data] == ["loc-hq", "loc-1", "loc-3"]
    assert result.data[2].has_role(LocationRole.DROPOFF)
    assert not result.data[2].has_role(LocationRole.PICKUP)


@pytest.mark.asyncio
async def test_create_location_sets_both_roles_and_default_country(store: MemoryRelationalStore) -> None:
    result = await _service(store).create_location({"name": " Train Station ", "city": "Tirana"})

    assert result.success
    assert result.data.name == "Train Station"
    assert result.data.is_pickup and result.data.is_dropoff
    assert result.data.country == "Albania"
    assert result.data.company_id == TENANT_A


@pytest.mark.asyncio
async def test_second_hq_location_is_a_conflict(store: MemoryRelationalStore) -> None:
    service = _service(store)
    assert (await service.create_location({"name": "Main office", "isHq": True})).success

    result = await service.create_location({"name": "Second office", "isHq": True})

    assert not result.success
    assert result.error_kind == ErrorKind.CONFLICT
    assert "headquarters" in result.error


@pytest.mark.asyncio
async def test_create_location_requires_a_name(store: MemoryRelationalStore) -> None:
    result = await _service(store).create_location({"name": "   "})
    assert result.error_kind == ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_update_location_of_other_tenant_is_rejected(store: MemoryRelationalStore) -> None:
    result = await _service(store, TENANT_B).update_location("loc-1", {"name": "Stolen"})

    assert result.error_kind == ErrorKind.AUTHORIZATION
    assert [row["name"] for row in store.rows("locations") if row["id"] == "loc-1"] == ["Airport"]


@pytest.mark.asyncio
async def test_update_location_keeps_hq_flag(store: MemoryRelationalStore) -> None:
    store.seed("locations", [{"id": "loc-hq", "company_id": TENANT_A, "name": "HQ - Acme", "is_hq": True}])

    result = await _service(store).update_location("loc-hq", {"name": "HQ - Acme Rentals"})

    assert result.success
    assert result.data.is_hq
    assert result.data.name == "HQ - Acme Rentals"


@pytest.mark.asyncio
async def test_delete_location_refuses_hq(store: MemoryRelationalStore) -> None:
    store.seed("locations", [{"id": "loc-hq", "company_id": TENANT_A, "name": "HQ", "is_hq": True}])
    service = _service(store)

    hq = await service.delete_location("loc-hq")
    plain = await service.delete_location("loc-3")

    assert not hq.success
    assert hq.error_kind == ErrorKind.CONFLICT
    assert plain.success
    assert {row["id"] for row in store.rows("locations")} == {"loc-1", "loc-2", "loc-hq"}


@pytest.mark.asyncio
async def test_delete_missing_location_is_not_found(store: MemoryRelationalStore) -> None:
    result = await _service(store).delete_location("loc-404")
    assert result.error_kind == ErrorKind.NOT_FOUND


class _RecordingStore(MemoryRelationalStore):
    def __init__(self) -> None:
        super().__init__()
        self.writes: list[tuple[str, Any]] = []

    async def update(self, table: str, values: Any, *, filters: Any) -> list[dict[str, Any]]:
        self.writes.append(("update", filters))
        return await super().update(table, values, filters=filters)

    async def delete(self, table: str, *, filters: Any) -> list[dict[str, Any]]:
        self.writes.append(("delete", filters))
        return await super().delete(table, filters=filters)


@pytest.mark.asyncio
async def test_location_writes_are_scoped_to_the_tenant() -> None:
    store = _RecordingStore()
    store.seed("locations", [{"id": "loc-1", "company_id": TENANT_A, "name": "Airport"}])
    service = _service(store)

    updated = await service.update_location("loc-1", {"name": "Airport T2"})
    deleted = await service.delete_location("loc-1")

    assert updated.success and deleted.success
    assert store.writes == [
        ("update", {"id": "loc-1", "company_id": TENANT_A}),
        ("delete", {"id": "loc-1", "company_id": TENANT_A}),
    ]


@pytest.mark.asyncio
async def test_ensure_hq_location_creates_once(store: MemoryRelationalStore) -> None:
    service = _service(store)

    first = await service.ensure_hq_location("Acme")
    second = await service.ensure_hq_location("Acme")

    assert first.success and second.success
    assert first.data.name == "HQ - Acme"
    assert first.data.is_hq
    assert first.data.id == second.data.id
    assert len([row for row in store.rows("locations") if row["is_hq"]]) == 1


class _LateHqStore(MemoryRelationalStore):
    """Hides the HQ row from the first lookup, as if a concurrent caller created it meanwhile."""

    def __init__(self) -> None:
        super().__init__()
        self.hq_lookups = 0

    async def select(self, table: str, *, filters: Any = None, columns: Any = None) -> list[dict[str, Any]]:
        if filters and filters.get("is_hq"):
            self.hq_lookups += 1
            if self.hq_lookups == 1:
                return []
        return await super().select(table, filters=filters, columns=columns)


@pytest.mark.asyncio
async def test_ensure_hq_location_tolerates_concurrent_creator() -> None:
    store = _LateHqStore()
    store.seed("locations", [{"id": "loc-winner", "company_id": TENANT_A, "name": "HQ - Acme", "is_hq": True}])

    result = await _service(store).ensure_hq_location("Acme")

    assert result.success
    assert result.data.id == "loc-winner"
    assert store.hq_lookups == 2


@pytest.mark.asyncio
async def test_location_service_requires_a_tenant(store: MemoryRelationalStore) -> None:
    result = await _service(store, None).list_locations()
    assert result.error_kind == ErrorKind.AUTHENTICATION
