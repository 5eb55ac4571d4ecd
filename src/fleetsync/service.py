"""Vehicle resource service: the orchestrator callers talk to.

Each public method runs one request-scoped chain of steps and converts
any :class:`~fleetsync.exceptions.FleetSyncError` into a caller-facing
result. The private step methods raise.

Create::

    validate -> tenant -> plate check -> resolve locations -> upload images
    -> insert row -> sync associations -> read back -> delete dropped blobs

Update follows the same chain with an ownership check after the tenant
lookup and a row update instead of the insert.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from typing import Any, NoReturn

from fleetsync._constants import VEHICLES_TABLE
from fleetsync._redact import redact_for_log
from fleetsync._tenancy import require_tenant
from fleetsync._timeout import Operation, TimeoutGuard
from fleetsync.config import FleetSyncConfig
from fleetsync.exceptions import (
    AuthorizationError,
    CheckViolationError,
    ConflictError,
    FieldViolation,
    FleetSyncError,
    NotFoundError,
    OperationTimeoutError,
    PartialCreateError,
    PermissionDeniedError,
    StoreError,
    UniqueViolationError,
    VehicleValidationError,
    VerifiedInconsistencyError,
)
from fleetsync.junction import JunctionSynchronizer
from fleetsync.locations import LocationResolver
from fleetsync.media import MediaManager, MediaPlan
from fleetsync.models import (
    DeleteResult,
    LocationAssignment,
    LocationRole,
    OperationResult,
    Vehicle,
    VehicleFields,
    VehiclePayload,
    VehicleResult,
    VehicleStatus,
)
from fleetsync.stores.base import BlobStore, IdentityProvider, RelationalStore, Row
from fleetsync.validation import parse_payload, validate_vehicle

_logger = logging.getLogger(__name__)

_SEARCH_COLUMNS = ("make", "model", "license_plate", "color")

# Check-constraint column -> (form field, message)
_CHECK_MESSAGES: tuple[tuple[str, str, str], ...] = (
    ("daily_rate", "dailyRate", "Daily rate must be greater than 0"),
    ("seats", "seats", "Seats must be greater than 0"),
    ("deposit_required", "depositRequired", "Deposit required must be 0 or greater"),
    ("status", "status", "Status must be active, maintenance, or retired"),
    ("transmission", "transmission", "Transmission must be automatic or manual"),
    ("fuel_type", "fuelType", "Fuel type must be petrol, diesel, electric, or hybrid"),
    ("year", "year", "Valid year is required"),
)


def _plate_conflict(plate: str) -> ConflictError:
    return ConflictError(
        f'A vehicle with license plate "{plate}" already exists in your fleet. Please use a different license plate.',
        field="licensePlate",
        value=plate,
    )


def _raise_vehicle_store_error(exc: StoreError, *, plate: str, action: str) -> NoReturn:
    """Translate a store error from a vehicle write into the caller taxonomy."""
    if isinstance(exc, UniqueViolationError):
        raise _plate_conflict(plate) from exc
    if isinstance(exc, CheckViolationError):
        text = str(exc)
        for column, field, message in _CHECK_MESSAGES:
            if column in text:
                raise VehicleValidationError([FieldViolation(field, message)]) from exc
        raise VehicleValidationError([FieldViolation("vehicle", "Invalid data provided")]) from exc
    if isinstance(exc, PermissionDeniedError):
        raise AuthorizationError(
            "Permission denied. Please ensure you have a company and access policies are configured correctly."
        ) from exc
    _logger.error("Failed to %s vehicle: code=%s table=%s %s", action, exc.code, exc.table, exc)
    raise exc


class VehicleService:
    """Create, update, delete and read tenant-owned vehicles.

    Parameters
    ----------
    config : FleetSyncConfig
        Timeouts, media limits and the partial-create policy.
    store : RelationalStore
        Holds ``vehicles``, ``locations`` and ``vehicle_locations``.
    blobs : BlobStore
        Image storage.
    identity : IdentityProvider
        Resolves the caller's tenant.
    today : callable or None
        Clock used for the model-year bound. Defaults to ``date.today``.
    """

    def __init__(
        self,
        config: FleetSyncConfig,
        store: RelationalStore,
        blobs: BlobStore,
        identity: IdentityProvider,
        *,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._identity = identity
        self._today = today or date.today
        self._guard = TimeoutGuard(config.timeouts)
        self._resolver = LocationResolver(
            store,
            self._guard,
            pattern=config.location_id_pattern,
            markers=config.sentinel_location_markers,
        )
        self._media = MediaManager(
            blobs,
            self._guard,
            upload_delay=config.upload_delay,
            max_image_bytes=config.max_image_bytes,
        )
        self._junction = JunctionSynchronizer(store, self._guard)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(self, payload: VehiclePayload | Mapping[str, Any]) -> VehicleResult:
        """Create a vehicle with its images and location associations."""
        try:
            vehicle = await self._create(self._parse(payload))
        except FleetSyncError as exc:
            _logger.debug("Vehicle create failed: %s (%s)", exc, exc.kind)
            return VehicleResult.failed(exc)
        return VehicleResult.ok(vehicle, "Vehicle created successfully")

    async def update(self, vehicle_id: str, payload: VehiclePayload | Mapping[str, Any]) -> VehicleResult:
        """Update a vehicle. Omitted image or location lists are left as stored."""
        try:
            vehicle = await self._update(vehicle_id, self._parse(payload))
        except FleetSyncError as exc:
            _logger.debug("Vehicle update of %s failed: %s (%s)", vehicle_id, exc, exc.kind)
            return VehicleResult.failed(exc)
        return VehicleResult.ok(vehicle, "Vehicle updated successfully")

    async def delete(self, vehicle_id: str) -> DeleteResult:
        """Delete a vehicle and, best effort, its images."""
        try:
            await self._delete(vehicle_id)
        except FleetSyncError as exc:
            _logger.debug("Vehicle delete of %s failed: %s (%s)", vehicle_id, exc, exc.kind)
            return DeleteResult.failed(exc)
        return DeleteResult.ok("Vehicle deleted successfully")

    async def get(self, vehicle_id: str) -> VehicleResult:
        """Read one vehicle of the caller's tenant."""
        try:
            vehicle = await self._get(vehicle_id)
        except FleetSyncError as exc:
            return VehicleResult.failed(exc)
        return VehicleResult.ok(vehicle)

    async def list(
        self,
        *,
        status: VehicleStatus | str | None = None,
        search: str | None = None,
    ) -> OperationResult[list[Vehicle]]:
        """Vehicles of the caller's tenant, newest first.

        *search* matches make, model, plate and color case-insensitively.
        """
        try:
            vehicles = await self._list(status=status, search=search)
        except FleetSyncError as exc:
            return OperationResult[list[Vehicle]].failed(exc)
        return OperationResult[list[Vehicle]].ok(vehicles)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(payload: VehiclePayload | Mapping[str, Any]) -> VehiclePayload:
        if isinstance(payload, VehiclePayload):
            return payload
        return parse_payload(dict(payload))

    def _validate(self, payload: VehiclePayload) -> VehicleFields:
        return validate_vehicle(payload, min_year=self._config.min_model_year, today=self._today())

    async def _create(self, payload: VehiclePayload) -> Vehicle:
        fields = self._validate(payload)
        tenant_id = await require_tenant(self._identity, self._guard)
        await self._ensure_plate_available(tenant_id, fields.license_plate)
        assignment = await self._resolve_locations(payload, tenant_id)

        vehicle_id = str(uuid.uuid4())
        plan = await self._media.prepare(
            (),
            payload.images or (),
            namespace=vehicle_id,
            allow_empty=not payload.images or payload.remove_images,
        )

        row = {
            **fields.to_row(),
            "id": vehicle_id,
            "company_id": tenant_id,
            "image_urls": list(plan.final_urls),
        }
        _logger.debug("Inserting vehicle %s: %s", vehicle_id, redact_for_log(row))
        try:
            await self._guard.run(
                Operation.INSERT,
                self._store.insert(VEHICLES_TABLE, [row]),
                "Failed to create vehicle. The request timed out. Please try again.",
            )
        except StoreError as exc:
            await self._media.discard(plan)
            _raise_vehicle_store_error(exc, plate=fields.license_plate, action="create")
        except OperationTimeoutError:
            # The insert may still have landed; keep the uploads it would reference.
            _logger.warning("Vehicle %s insert timed out, %d upload(s) left in place", vehicle_id, len(plan.uploaded))
            raise

        try:
            stored = await self._junction.sync(vehicle_id, assignment)
            vehicle = await self._read_back(vehicle_id, plan.final_urls, stored)
        except FleetSyncError as exc:
            await self._abandon_create(vehicle_id, plan, exc)

        await self._media.commit(plan)
        _logger.debug("Created vehicle %s for company %s", vehicle_id, tenant_id)
        return vehicle

    async def _update(self, vehicle_id: str, payload: VehiclePayload) -> Vehicle:
        fields = self._validate(payload)
        tenant_id = await require_tenant(self._identity, self._guard)
        existing = await self._fetch_owned(vehicle_id, tenant_id, action="update")

        if fields.license_plate != existing.license_plate:
            await self._ensure_plate_available(tenant_id, fields.license_plate, exclude_id=vehicle_id)

        assignment = await self._resolve_locations(payload, tenant_id, vehicle_id=vehicle_id)

        if payload.images is None:
            plan = MediaPlan.unchanged(existing.image_urls)
        else:
            plan = await self._media.prepare(
                existing.image_urls,
                payload.images,
                namespace=vehicle_id,
                allow_empty=payload.remove_images or (not payload.images and not existing.image_urls),
            )

        values = {**fields.to_row(), "image_urls": list(plan.final_urls)}
        _logger.debug("Updating vehicle %s: %s", vehicle_id, redact_for_log(values))
        try:
            updated = await self._guard.run(
                Operation.UPDATE,
                self._store.update(VEHICLES_TABLE, values, filters={"id": vehicle_id, "company_id": tenant_id}),
                "Failed to update vehicle. The request timed out. Please try again.",
            )
        except StoreError as exc:
            await self._media.discard(plan)
            _raise_vehicle_store_error(exc, plate=fields.license_plate, action="update")
        except OperationTimeoutError:
            _logger.warning("Vehicle %s update timed out, %d upload(s) left in place", vehicle_id, len(plan.uploaded))
            raise
        if not updated:
            await self._media.discard(plan)
            raise NotFoundError(
                "Vehicle not found. It may have been deleted.",
                resource=VEHICLES_TABLE,
                resource_id=vehicle_id,
            )

        try:
            stored = await self._junction.sync(vehicle_id, assignment)
            vehicle = await self._read_back(vehicle_id, plan.final_urls, stored)
        except FleetSyncError:
            if plan.removed:
                _logger.warning("Leaving %d unreferenced image(s) of %s in storage", len(plan.removed), vehicle_id)
            raise

        await self._media.commit(plan)
        return vehicle

    async def _delete(self, vehicle_id: str) -> None:
        tenant_id = await require_tenant(self._identity, self._guard)
        existing = await self._fetch_owned(vehicle_id, tenant_id, action="delete")

        failed = await self._media.purge(existing.image_urls)
        if failed:
            _logger.warning("%d image(s) of vehicle %s could not be deleted", len(failed), vehicle_id)

        try:
            await self._guard.run(
                Operation.DELETE,
                self._store.delete(VEHICLES_TABLE, filters={"id": vehicle_id, "company_id": tenant_id}),
                "Failed to delete vehicle. The request timed out. Please try again.",
            )
        except StoreError as exc:
            _raise_vehicle_store_error(exc, plate=existing.license_plate, action="delete")
        _logger.debug("Deleted vehicle %s", vehicle_id)

    async def _get(self, vehicle_id: str) -> Vehicle:
        tenant_id = await require_tenant(self._identity, self._guard)
        existing = await self._fetch_owned(vehicle_id, tenant_id, action="view")
        assignment = await self._junction.read(vehicle_id)
        return Vehicle.from_row(existing.raw, assignment)

    async def _list(self, *, status: VehicleStatus | str | None, search: str | None) -> list[Vehicle]:
        tenant_id = await require_tenant(self._identity, self._guard)
        filters: dict[str, Any] = {"company_id": tenant_id}
        if status is not None:
            try:
                filters["status"] = VehicleStatus(str(status).strip().lower()).value
            except ValueError as exc:
                raise VehicleValidationError(
                    [FieldViolation("status", "Status must be active, maintenance, or retired")]
                ) from exc

        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(VEHICLES_TABLE, filters=filters),
            "Failed to fetch vehicles. The request timed out. Please try again.",
        )
        needle = (search or "").strip().lower()
        if needle:
            rows = [row for row in rows if any(needle in str(row.get(col) or "").lower() for col in _SEARCH_COLUMNS)]
        rows.sort(key=lambda row: str(row.get("created_at") or ""), reverse=True)

        assignments = await self._junction.read_many([str(row["id"]) for row in rows])
        return [Vehicle.from_row(row, assignments.get(str(row["id"]))) for row in rows]

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _ensure_plate_available(self, tenant_id: str, plate: str, *, exclude_id: str | None = None) -> None:
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(
                VEHICLES_TABLE,
                filters={"company_id": tenant_id, "license_plate": plate},
                columns=("id", "license_plate"),
            ),
            "Failed to check for duplicate license plate. Please try again.",
        )
        if any(row.get("id") != exclude_id for row in rows):
            raise _plate_conflict(plate)

    async def _resolve_locations(
        self,
        payload: VehiclePayload,
        tenant_id: str,
        *,
        vehicle_id: str | None = None,
    ) -> LocationAssignment:
        """Validated association sets for the payload.

        On update (*vehicle_id* given) a role whose list was omitted keeps
        its stored set.
        """
        current: LocationAssignment | None = None
        assignment = LocationAssignment()
        for role, raw in (
            (LocationRole.PICKUP, payload.pickup_locations),
            (LocationRole.DROPOFF, payload.dropoff_locations),
        ):
            if raw is None and vehicle_id is not None:
                if current is None:
                    current = await self._junction.read(vehicle_id)
                assignment = assignment.replace(role, current.for_role(role))
                continue
            ids = await self._resolver.resolve(raw, tenant_id=tenant_id, role=role)
            assignment = assignment.replace(role, ids)
        return assignment

    async def _fetch_row(self, vehicle_id: str) -> Row | None:
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(VEHICLES_TABLE, filters={"id": vehicle_id}),
            "Failed to verify vehicle access. Please try again.",
        )
        return rows[0] if rows else None

    async def _fetch_owned(self, vehicle_id: str, tenant_id: str, *, action: str) -> Vehicle:
        row = await self._fetch_row(vehicle_id)
        if row is None:
            raise NotFoundError("Vehicle not found", resource=VEHICLES_TABLE, resource_id=vehicle_id)
        if row.get("company_id") != tenant_id:
            _logger.debug("Tenant %s may not %s vehicle %s", tenant_id, action, vehicle_id)
            raise AuthorizationError(f"You do not have permission to {action} this vehicle")
        return Vehicle.from_row(row)

    async def _read_back(
        self,
        vehicle_id: str,
        expected_urls: Sequence[str],
        assignment: LocationAssignment,
    ) -> Vehicle:
        row = await self._fetch_row(vehicle_id)
        if row is None:
            _logger.error("Vehicle %s vanished right after it was written", vehicle_id)
            raise VerifiedInconsistencyError(
                "Vehicle could not be read back after saving. It may have been deleted concurrently.",
                vehicle_id=vehicle_id,
                expected={"image_urls": list(expected_urls)},
            )
        vehicle = Vehicle.from_row(row, assignment)
        if vehicle.image_urls != tuple(expected_urls):
            _logger.error(
                "Image list read-back mismatch for %s: expected=%s actual=%s",
                vehicle_id,
                list(expected_urls),
                list(vehicle.image_urls),
            )
            raise VerifiedInconsistencyError(
                "Vehicle images were changed concurrently and do not match what was saved. Please try again.",
                vehicle_id=vehicle_id,
                expected={"image_urls": list(expected_urls)},
                actual={"image_urls": list(vehicle.image_urls)},
            )
        return vehicle

    async def _abandon_create(self, vehicle_id: str, plan: MediaPlan, cause: FleetSyncError) -> NoReturn:
        """Handle a failure after the vehicle row was inserted."""
        if not self._config.rollback_partial_create:
            _logger.warning("Vehicle %s left in place after failed create step: %s", vehicle_id, cause)
            raise PartialCreateError(
                f"Vehicle was created but a later step failed: {cause}",
                vehicle_id=vehicle_id,
            ) from cause

        try:
            await self._guard.run(
                Operation.DELETE,
                self._store.delete(VEHICLES_TABLE, filters={"id": vehicle_id}),
                "Failed to roll back vehicle creation. The request timed out.",
            )
        except FleetSyncError as rollback_exc:
            _logger.error("Rollback of vehicle %s failed: %s", vehicle_id, rollback_exc)
            raise PartialCreateError(
                f"Vehicle was created but a later step failed ({cause}) and it could not be rolled back",
                vehicle_id=vehicle_id,
            ) from cause

        await self._media.discard(plan)
        _logger.warning("Rolled back vehicle %s after failed create step: %s", vehicle_id, cause)
        raise cause
