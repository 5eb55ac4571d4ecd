"""Vehicle models.

:class:`VehicleFields` is the validated, normalized scalar record the
validator produces. :class:`Vehicle` is the full resource returned to
callers: the stored row plus its image list and location associations.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from fleetsync.models._base import FleetBaseModel, FuelType, Transmission, VehicleStatus
from fleetsync.models.location import LocationAssignment

_SCALAR_FIELDS: frozenset[str] = frozenset(
    {
        "make",
        "model",
        "year",
        "license_plate",
        "color",
        "transmission",
        "fuel_type",
        "seats",
        "daily_rate",
        "deposit_required",
        "status",
        "features",
    }
)


def _split_urls(value: Any) -> Any:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return value


class VehicleFields(FleetBaseModel):
    """Validated scalar attributes of a vehicle."""

    make: str
    model: str
    year: int
    license_plate: str
    color: str | None = None
    transmission: Transmission
    fuel_type: FuelType
    seats: int
    daily_rate: Decimal
    deposit_required: Decimal | None = None
    status: VehicleStatus = VehicleStatus.ACTIVE
    features: tuple[str, ...] | None = None

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``vehicles`` table."""
        return {
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "license_plate": self.license_plate,
            "color": self.color,
            "transmission": self.transmission.value,
            "fuel_type": self.fuel_type.value,
            "seats": self.seats,
            "daily_rate": self.daily_rate,
            "deposit_required": self.deposit_required,
            "status": self.status.value,
            "features": list(self.features) if self.features else None,
        }


class Vehicle(FleetBaseModel):
    """A tenant-owned rental vehicle with its images and locations."""

    id: str
    company_id: str
    make: str
    model: str
    year: int
    license_plate: str
    color: str | None = None
    transmission: Transmission
    fuel_type: FuelType
    seats: int
    daily_rate: Decimal
    deposit_required: Decimal | None = None
    status: VehicleStatus = VehicleStatus.ACTIVE
    features: tuple[str, ...] | None = None
    image_urls: tuple[str, ...] = ()
    """Ordered image references, the first one is the primary image."""
    pickup_location_ids: tuple[str, ...] = ()
    dropoff_location_ids: tuple[str, ...] = ()
    created_at: datetime | None = None
    updated_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Row as returned by the relational store."""

    @field_validator("image_urls", mode="before")
    @classmethod
    def _coerce_image_urls(cls, value: Any) -> Any:
        return _split_urls(value)

    @field_validator("features", mode="before")
    @classmethod
    def _coerce_features(cls, value: Any) -> Any:
        if value is None or value == []:
            return None
        return value

    @property
    def primary_image_url(self) -> str | None:
        return self.image_urls[0] if self.image_urls else None

    @property
    def locations(self) -> LocationAssignment:
        return LocationAssignment(
            pickup=frozenset(self.pickup_location_ids),
            dropoff=frozenset(self.dropoff_location_ids),
        )

    def fields(self) -> VehicleFields:
        """The scalar part of this vehicle as a :class:`VehicleFields`."""
        return VehicleFields.model_validate(self.model_dump(include=set(_SCALAR_FIELDS)))

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        assignment: LocationAssignment | None = None,
    ) -> Vehicle:
        """Build a resource from a ``vehicles`` row and its association sets."""
        data = dict(row)
        data["raw"] = dict(row)
        if assignment is not None:
            data["pickup_location_ids"] = tuple(sorted(assignment.pickup))
            data["dropoff_location_ids"] = tuple(sorted(assignment.dropoff))
        return cls.model_validate(data)
