from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from _helpers import TENANT_A, TENANT_B, TODAY

from fleetsync.config import FleetSyncConfig
from fleetsync.service import VehicleService
from fleetsync.stores import MemoryBlobStore, MemoryRelationalStore, StaticIdentity


@pytest.fixture
def config() -> FleetSyncConfig:
    return FleetSyncConfig(upload_delay=0.0)


@pytest.fixture
def store() -> MemoryRelationalStore:
    store = MemoryRelationalStore()
    store.seed(
        "locations",
        [
            {"id": "loc-1", "company_id": TENANT_A, "name": "Airport", "is_pickup": True, "is_dropoff": True},
            {"id": "loc-2", "company_id": TENANT_B, "name": "Harbour", "is_pickup": True, "is_dropoff": True},
            {"id": "loc-3", "company_id": TENANT_A, "name": "City", "is_pickup": False, "is_dropoff": True},
        ],
    )
    return store


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def make_service(
    config: FleetSyncConfig,
    store: MemoryRelationalStore,
    blobs: MemoryBlobStore,
) -> Callable[..., VehicleService]:
    def _make(
        tenant_id: str | None = TENANT_A,
        *,
        store_override: Any = None,
        blobs_override: Any = None,
        config_override: FleetSyncConfig | None = None,
    ) -> VehicleService:
        return VehicleService(
            config_override or config,
            store_override or store,
            blobs_override or blobs,
            StaticIdentity(tenant_id),
            today=lambda: TODAY,
        )

    return _make
