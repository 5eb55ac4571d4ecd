"""Custom exception hierarchy for fleetsync."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Mapping, Sequence
from typing import Any


class ErrorKind(enum.StrEnum):
    """Stable failure classification carried on every fleetsync error."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    REFERENTIAL = "referential"
    MEDIA = "media"
    TIMEOUT = "timeout"
    VERIFIED_INCONSISTENCY = "verified_inconsistency"
    PARTIAL_CREATE = "partial_create"
    STORE = "store"
    CONFIG = "config"


class FleetSyncError(Exception):
    """Base exception for all fleetsync errors."""

    kind: ErrorKind = ErrorKind.STORE

    def details(self) -> dict[str, Any]:
        """Structured, caller-presentable context for this error."""
        return {}


class FleetSyncConfigError(FleetSyncError):
    """Invalid or missing configuration."""

    kind = ErrorKind.CONFIG


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class FieldViolation:
    """A single field-level validation failure."""

    field: str
    message: str


class FieldValidationError(FleetSyncError):
    """One or more input fields failed validation.

    Raised before any mutating call, so nothing has been written when
    a caller sees this.
    """

    kind = ErrorKind.VALIDATION
    default_message = "Invalid data"

    def __init__(self, violations: Sequence[FieldViolation]) -> None:
        self.violations: tuple[FieldViolation, ...] = tuple(violations)
        summary = "; ".join(v.message for v in self.violations) or self.default_message
        super().__init__(summary)

    @property
    def fields(self) -> list[str]:
        return [v.field for v in self.violations]

    def details(self) -> dict[str, Any]:
        return {"violations": [{"field": v.field, "message": v.message} for v in self.violations]}


class VehicleValidationError(FieldValidationError):
    """One or more vehicle fields failed validation."""

    default_message = "Invalid vehicle data"


class LocationValidationError(FieldValidationError):
    """One or more location fields failed validation."""

    default_message = "Invalid location data"


# ------------------------------------------------------------------
# Access control
# ------------------------------------------------------------------


class AuthenticationError(FleetSyncError):
    """No authenticated tenant could be resolved for the caller."""

    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(FleetSyncError):
    """The caller's tenant does not own the target resource."""

    kind = ErrorKind.AUTHORIZATION


class NotFoundError(FleetSyncError):
    """The target resource does not exist (or is not visible)."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, *, resource: str = "", resource_id: str = "") -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message)


class ConflictError(FleetSyncError):
    """A uniqueness rule would be broken (e.g. duplicate license plate)."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, *, field: str = "", value: str = "") -> None:
        self.field = field
        self.value = value
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "value": self.value}


class ReferentialError(FleetSyncError):
    """Location references that are missing, foreign or lack the role flag.

    ``invalid`` maps every offending id to the list of reasons it was
    rejected, so the caller receives the complete report in one go.
    """

    kind = ErrorKind.REFERENTIAL

    def __init__(self, role: str, invalid: Mapping[str, Sequence[str]]) -> None:
        self.role = role
        self.invalid: dict[str, list[str]] = {key: list(reasons) for key, reasons in invalid.items()}
        rendered = ", ".join(f"{loc_id} ({'; '.join(reasons)})" for loc_id, reasons in self.invalid.items())
        super().__init__(f"Invalid {role} locations: {rendered}")

    @property
    def location_ids(self) -> list[str]:
        return list(self.invalid)

    def details(self) -> dict[str, Any]:
        return {"role": self.role, "invalid": self.invalid}


# ------------------------------------------------------------------
# Media
# ------------------------------------------------------------------


class ImageDecodeError(FleetSyncError):
    """An inline image payload is malformed, too large or not an image."""

    kind = ErrorKind.MEDIA


class MediaError(FleetSyncError):
    """No usable image remained after processing the desired image list."""

    kind = ErrorKind.MEDIA

    def __init__(self, message: str, *, failures: Sequence[str] = ()) -> None:
        self.failures = list(failures)
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"failures": self.failures}


# ------------------------------------------------------------------
# Resilience and consistency
# ------------------------------------------------------------------


class OperationTimeoutError(FleetSyncError):
    """An external call exceeded its time budget.

    The message is user-presentable and suggests a retry.
    """

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, *, operation: str = "", timeout: float | None = None) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"operation": self.operation, "timeout": self.timeout}


class VerifiedInconsistencyError(FleetSyncError):
    """A write reported success but the read-back does not match intent.

    Usually a lost update caused by a concurrent writer. Callers should
    retry rather than trust the stored state.
    """

    kind = ErrorKind.VERIFIED_INCONSISTENCY

    def __init__(
        self,
        message: str,
        *,
        vehicle_id: str = "",
        expected: Mapping[str, Any] | None = None,
        actual: Mapping[str, Any] | None = None,
    ) -> None:
        self.vehicle_id = vehicle_id
        self.expected = dict(expected or {})
        self.actual = dict(actual or {})
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"vehicle_id": self.vehicle_id, "expected": self.expected, "actual": self.actual}


class PartialCreateError(FleetSyncError):
    """A vehicle row was inserted but a later step failed and it was not rolled back."""

    kind = ErrorKind.PARTIAL_CREATE

    def __init__(self, message: str, *, vehicle_id: str) -> None:
        self.vehicle_id = vehicle_id
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        return {"vehicle_id": self.vehicle_id}


# ------------------------------------------------------------------
# Store level
# ------------------------------------------------------------------


class StoreError(FleetSyncError):
    """The relational store returned an error."""

    kind = ErrorKind.STORE

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        table: str = "",
        hint: str = "",
    ) -> None:
        self.code = code
        self.table = table
        self.hint = hint
        super().__init__(message)


class UniqueViolationError(StoreError):
    """Unique constraint violated (code ``23505``)."""


class CheckViolationError(StoreError):
    """Check constraint violated (code ``23514``)."""


class ForeignKeyViolationError(StoreError):
    """Foreign key constraint violated (code ``23503``)."""


class PermissionDeniedError(StoreError):
    """Row-level security or grants rejected the call (code ``42501``)."""


class BlobStoreError(FleetSyncError):
    """Blob storage upload or delete failed."""

    kind = ErrorKind.STORE

    def __init__(self, message: str, *, path: str = "", status_code: int | None = None) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(message)
