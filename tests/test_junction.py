from __future__ import annotations

from typing import Any

import pytest
from _helpers import TENANT_A

from fleetsync._timeout import TimeoutGuard
from fleetsync.config import OperationTimeouts
from fleetsync.exceptions import ErrorKind, ForeignKeyViolationError, VerifiedInconsistencyError
from fleetsync.junction import JunctionSynchronizer
from fleetsync.models import LocationAssignment
from fleetsync.stores import MemoryRelationalStore


def _seed_vehicle(store: MemoryRelationalStore, vehicle_id: str = "veh-1") -> None:
    store.seed("vehicles", [{"id": vehicle_id, "company_id": TENANT_A, "license_plate": vehicle_id.upper()}])


def _sync(store: MemoryRelationalStore) -> JunctionSynchronizer:
    return JunctionSynchronizer(store, TimeoutGuard(OperationTimeouts()))


@pytest.mark.asyncio
async def test_sync_replaces_associations(store: MemoryRelationalStore) -> None:
    _seed_vehicle(store)
    junction = _sync(store)
    await junction.sync("veh-1", LocationAssignment(pickup=frozenset({"loc-3"})))

    desired = LocationAssignment(pickup=frozenset({"loc-1"}), dropoff=frozenset({"loc-1", "loc-3"}))
    stored = await junction.sync("veh-1", desired)

    assert stored == desired
    assert sorted((row["location_id"], row["role"]) for row in store.rows("vehicle_locations")) == [
        ("loc-1", "dropoff"),
        ("loc-1", "pickup"),
        ("loc-3", "dropoff"),
    ]


@pytest.mark.asyncio
async def test_sync_is_idempotent(store: MemoryRelationalStore) -> None:
    _seed_vehicle(store)
    junction = _sync(store)
    desired = LocationAssignment(pickup=frozenset({"loc-1"}), dropoff=frozenset({"loc-3"}))

    await junction.sync("veh-1", desired)
    before = store.rows("vehicle_locations")
    await junction.sync("veh-1", desired)

    assert [(r["location_id"], r["role"]) for r in store.rows("vehicle_locations")] == [
        (r["location_id"], r["role"]) for r in before
    ]


class _RecordingStore(MemoryRelationalStore):
    def __init__(self) -> None:
        super().__init__()
        self.inserts: list[str] = []

    async def insert(self, table: str, rows: Any) -> list[dict[str, Any]]:
        self.inserts.append(table)
        return await super().insert(table, rows)


@pytest.mark.asyncio
async def test_empty_assignment_clears_without_insert() -> None:
    store = _RecordingStore()
    store.seed("locations", [{"id": "loc-1", "company_id": TENANT_A}])
    _seed_vehicle(store)
    store.seed("vehicle_locations", [{"vehicle_id": "veh-1", "location_id": "loc-1", "role": "pickup"}])

    stored = await _sync(store).sync("veh-1", LocationAssignment())

    assert stored == LocationAssignment()
    assert store.rows("vehicle_locations") == []
    assert store.inserts == []


class _ConcurrentClearStore(MemoryRelationalStore):
    """Another writer clears the vehicle's associations right after our insert."""

    async def insert(self, table: str, rows: Any) -> list[dict[str, Any]]:
        inserted = await super().insert(table, rows)
        if table == "vehicle_locations":
            await super().delete(table, filters={"vehicle_id": rows[0]["vehicle_id"]})
        return inserted


@pytest.mark.asyncio
async def test_lost_update_is_reported_as_verified_inconsistency() -> None:
    store = _ConcurrentClearStore()
    store.seed("locations", [{"id": "loc-1", "company_id": TENANT_A}])
    _seed_vehicle(store)

    with pytest.raises(VerifiedInconsistencyError) as excinfo:
        await _sync(store).sync("veh-1", LocationAssignment(pickup=frozenset({"loc-1"})))

    assert excinfo.value.kind == ErrorKind.VERIFIED_INCONSISTENCY
    assert excinfo.value.expected == {"pickup": ["loc-1"], "dropoff": []}
    assert excinfo.value.actual == {"pickup": [], "dropoff": []}


@pytest.mark.asyncio
async def test_unknown_location_surfaces_store_error(store: MemoryRelationalStore) -> None:
    _seed_vehicle(store)

    with pytest.raises(ForeignKeyViolationError):
        await _sync(store).sync("veh-1", LocationAssignment(pickup=frozenset({"loc-deleted"})))


@pytest.mark.asyncio
async def test_read_many_groups_by_vehicle(store: MemoryRelationalStore) -> None:
    _seed_vehicle(store, "veh-1")
    _seed_vehicle(store, "veh-2")
    junction = _sync(store)
    await junction.sync("veh-1", LocationAssignment(pickup=frozenset({"loc-1"})))

    grouped = await junction.read_many(["veh-1", "veh-2"])

    assert grouped["veh-1"].pickup == frozenset({"loc-1"})
    assert grouped["veh-2"] == LocationAssignment()
