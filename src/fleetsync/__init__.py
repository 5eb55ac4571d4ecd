"""fleetsync - Async vehicle resource synchronization for rental fleets."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetsync")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetsync.config import FleetSyncConfig, OperationTimeouts
from fleetsync.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BlobStoreError,
    ConflictError,
    ErrorKind,
    FieldValidationError,
    FieldViolation,
    FleetSyncConfigError,
    FleetSyncError,
    ImageDecodeError,
    LocationValidationError,
    MediaError,
    NotFoundError,
    OperationTimeoutError,
    PartialCreateError,
    ReferentialError,
    StoreError,
    VehicleValidationError,
    VerifiedInconsistencyError,
)
from fleetsync.junction import JunctionSynchronizer
from fleetsync.locations import LocationResolver, LocationService
from fleetsync.media import MediaManager, MediaPlan
from fleetsync.models import (
    DeleteResult,
    FuelType,
    Location,
    LocationAssignment,
    LocationInput,
    LocationRole,
    OperationResult,
    Transmission,
    Vehicle,
    VehicleFields,
    VehiclePayload,
    VehicleResult,
    VehicleStatus,
)
from fleetsync.service import VehicleService
from fleetsync.stores import (
    MemoryBlobStore,
    MemoryRelationalStore,
    PostgrestStore,
    StaticIdentity,
    StorageBucket,
)
from fleetsync.validation import validate_vehicle

__all__ = [
    "__version__",
    "AuthenticationError",
    "AuthorizationError",
    "BlobStoreError",
    "ConflictError",
    "DeleteResult",
    "ErrorKind",
    "FieldValidationError",
    "FieldViolation",
    "FleetSyncConfig",
    "FleetSyncConfigError",
    "FleetSyncError",
    "FuelType",
    "ImageDecodeError",
    "JunctionSynchronizer",
    "Location",
    "LocationAssignment",
    "LocationInput",
    "LocationResolver",
    "LocationRole",
    "LocationService",
    "LocationValidationError",
    "MediaError",
    "MediaManager",
    "MediaPlan",
    "MemoryBlobStore",
    "MemoryRelationalStore",
    "NotFoundError",
    "OperationResult",
    "OperationTimeoutError",
    "OperationTimeouts",
    "PartialCreateError",
    "PostgrestStore",
    "ReferentialError",
    "StaticIdentity",
    "StorageBucket",
    "StoreError",
    "Transmission",
    "Vehicle",
    "VehicleFields",
    "VehiclePayload",
    "VehicleResult",
    "VehicleService",
    "VehicleStatus",
    "VehicleValidationError",
    "VerifiedInconsistencyError",
    "validate_vehicle",
]
