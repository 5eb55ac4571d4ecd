"""Caller-facing operation results."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import Field

from fleetsync.exceptions import ErrorKind, FleetSyncError
from fleetsync.models._base import FleetBaseModel
from fleetsync.models.vehicle import Vehicle

T = TypeVar("T")


class OperationResult(FleetBaseModel, Generic[T]):
    """Outcome of a create/update/read call.

    ``error_kind`` tells the caller which failure class occurred, so a
    timeout can be retried while a validation failure is shown to the user.
    """

    success: bool
    error: str | None = None
    message: str | None = None
    data: T | None = None
    error_kind: ErrorKind | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, data: T | None = None, message: str | None = None) -> OperationResult[T]:
        return cls(success=True, data=data, message=message)

    @classmethod
    def failed(cls, exc: FleetSyncError) -> OperationResult[T]:
        return cls(success=False, error=str(exc), error_kind=exc.kind, details=exc.details())


VehicleResult = OperationResult[Vehicle]


class DeleteResult(FleetBaseModel):
    """Outcome of a delete call."""

    success: bool
    error: str | None = None
    message: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, message: str | None = None) -> DeleteResult:
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, exc: FleetSyncError) -> DeleteResult:
        return cls(success=False, error=str(exc), error_kind=exc.kind)
