"""Data models for fleetsync."""

from fleetsync.models._base import FleetBaseModel, FuelType, LocationRole, Transmission, VehicleStatus
from fleetsync.models.location import (
    CustomLocation,
    KnownLocation,
    Location,
    LocationAssignment,
    LocationInput,
    LocationRef,
)
from fleetsync.models.payload import DecodedImage, ImageEntry, InlineImage, StoredImage, VehiclePayload
from fleetsync.models.result import DeleteResult, OperationResult, VehicleResult
from fleetsync.models.vehicle import Vehicle, VehicleFields

__all__ = [
    "CustomLocation",
    "DecodedImage",
    "DeleteResult",
    "FleetBaseModel",
    "FuelType",
    "ImageEntry",
    "InlineImage",
    "KnownLocation",
    "Location",
    "LocationAssignment",
    "LocationInput",
    "LocationRef",
    "LocationRole",
    "OperationResult",
    "StoredImage",
    "Transmission",
    "Vehicle",
    "VehicleFields",
    "VehiclePayload",
    "VehicleResult",
    "VehicleStatus",
]
