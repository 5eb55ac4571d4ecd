"""Location models and vehicle-location association sets."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from fleetsync.models._base import FleetBaseModel, LocationRole


class Location(FleetBaseModel):
    """A tenant-owned place where vehicles are picked up or dropped off."""

    id: str
    company_id: str
    name: str = ""
    address_line_1: str | None = None
    address_line_2: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    is_pickup: bool = False
    is_dropoff: bool = False
    is_hq: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def has_role(self, role: LocationRole) -> bool:
        """Whether the role flag for *role* is set."""
        if role == LocationRole.PICKUP:
            return self.is_pickup
        return self.is_dropoff


class LocationInput(FleetBaseModel):
    """Caller-supplied fields for creating or updating a location."""

    name: str
    address_line_1: str | None = None
    address_line_2: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    is_hq: bool = False
    is_active: bool = True


# ------------------------------------------------------------------
# Location references
# ------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, slots=True)
class KnownLocation:
    """A reference to a real location row."""

    location_id: str


@dataclasses.dataclass(frozen=True, slots=True)
class CustomLocation:
    """A form placeholder for a not-yet-created custom location.

    Never persisted as an association.
    """

    marker: str


LocationRef = KnownLocation | CustomLocation


# ------------------------------------------------------------------
# Association sets
# ------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class LocationAssignment:
    """The pickup and dropoff location sets of one vehicle."""

    pickup: frozenset[str] = frozenset()
    dropoff: frozenset[str] = frozenset()

    def for_role(self, role: LocationRole) -> frozenset[str]:
        return self.pickup if role == LocationRole.PICKUP else self.dropoff

    def replace(self, role: LocationRole, location_ids: Iterable[str]) -> LocationAssignment:
        ids = frozenset(location_ids)
        if role == LocationRole.PICKUP:
            return dataclasses.replace(self, pickup=ids)
        return dataclasses.replace(self, dropoff=ids)

    def to_rows(self, vehicle_id: str) -> list[dict[str, str]]:
        """Junction rows for this assignment, pickup first, each role sorted."""
        rows: list[dict[str, str]] = []
        for role in (LocationRole.PICKUP, LocationRole.DROPOFF):
            for location_id in sorted(self.for_role(role)):
                rows.append(
                    {
                        "vehicle_id": vehicle_id,
                        "location_id": location_id,
                        "role": role.value,
                    }
                )
        return rows

    def as_dict(self) -> dict[str, list[str]]:
        return {"pickup": sorted(self.pickup), "dropoff": sorted(self.dropoff)}

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> LocationAssignment:
        pickup: set[str] = set()
        dropoff: set[str] = set()
        for row in rows:
            role = row.get("role")
            location_id = row.get("location_id")
            if not location_id:
                continue
            if role == LocationRole.PICKUP:
                pickup.add(str(location_id))
            elif role == LocationRole.DROPOFF:
                dropoff.add(str(location_id))
        return cls(pickup=frozenset(pickup), dropoff=frozenset(dropoff))
