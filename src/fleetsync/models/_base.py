"""Base model and enums shared by fleetsync models.

Every boundary model inherits from :class:`FleetBaseModel` which provides:

* ``alias_generator=to_camel`` so the dashboard's camelCase keys map to
  snake_case fields, while rows from the relational store (already
  snake_case) validate through ``populate_by_name``.
* Frozen instances, so a validated record cannot drift after checks ran.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FleetBaseModel(BaseModel):
    """Base for fleetsync boundary models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Transmission(enum.StrEnum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class FuelType(enum.StrEnum):
    PETROL = "petrol"
    DIESEL = "diesel"
    ELECTRIC = "electric"
    HYBRID = "hybrid"


class VehicleStatus(enum.StrEnum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class LocationRole(enum.StrEnum):
    """Role of a vehicle-location association."""

    PICKUP = "pickup"
    DROPOFF = "dropoff"
