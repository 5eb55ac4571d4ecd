"""Vehicle-location association replacement with read-back verification."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from fleetsync._constants import VEHICLE_LOCATIONS_TABLE
from fleetsync._timeout import Operation, TimeoutGuard
from fleetsync.exceptions import VerifiedInconsistencyError
from fleetsync.models import LocationAssignment
from fleetsync.stores.base import RelationalStore

_logger = logging.getLogger(__name__)

_COLUMNS = ("vehicle_id", "location_id", "role")


class JunctionSynchronizer:
    """Replaces a vehicle's associations and confirms the stored result.

    There is no cross-table transaction: the replace is a delete followed
    by an insert, and a concurrent writer can interleave. The read-back
    turns such a lost update into a :class:`VerifiedInconsistencyError`.
    """

    def __init__(self, store: RelationalStore, guard: TimeoutGuard) -> None:
        self._store = store
        self._guard = guard

    async def read(self, vehicle_id: str) -> LocationAssignment:
        """Current association sets of one vehicle."""
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(VEHICLE_LOCATIONS_TABLE, filters={"vehicle_id": vehicle_id}, columns=_COLUMNS),
            "Failed to load vehicle locations. Please try again.",
        )
        return LocationAssignment.from_rows(rows)

    async def read_many(self, vehicle_ids: Sequence[str]) -> dict[str, LocationAssignment]:
        """Association sets for several vehicles in one call."""
        if not vehicle_ids:
            return {}
        rows = await self._guard.run(
            Operation.QUERY,
            self._store.select(VEHICLE_LOCATIONS_TABLE, filters={"vehicle_id": list(vehicle_ids)}, columns=_COLUMNS),
            "Failed to load vehicle locations. Please try again.",
        )
        grouped: dict[str, list[dict]] = {vehicle_id: [] for vehicle_id in vehicle_ids}
        for row in rows:
            grouped.setdefault(str(row.get("vehicle_id")), []).append(row)
        return {vehicle_id: LocationAssignment.from_rows(group) for vehicle_id, group in grouped.items()}

    async def sync(self, vehicle_id: str, desired: LocationAssignment) -> LocationAssignment:
        """Replace all associations of *vehicle_id* with *desired*.

        Parameters
        ----------
        vehicle_id : str
            Vehicle whose associations are replaced.
        desired : LocationAssignment
            Pickup and dropoff sets, already validated by the resolver.

        Returns
        -------
        LocationAssignment
            The verified stored state, equal to *desired*.

        Raises
        ------
        VerifiedInconsistencyError
            The writes succeeded but the read-back differs from *desired*.
        """
        await self._guard.run(
            Operation.DELETE,
            self._store.delete(VEHICLE_LOCATIONS_TABLE, filters={"vehicle_id": vehicle_id}),
            "Failed to clear existing locations. The request timed out. Please try again.",
        )

        rows = desired.to_rows(vehicle_id)
        if rows:
            await self._guard.run(
                Operation.INSERT,
                self._store.insert(VEHICLE_LOCATIONS_TABLE, rows),
                "Failed to save locations. The request timed out. Please try again.",
            )
        _logger.debug(
            "Replaced associations of %s: %d pickup, %d dropoff",
            vehicle_id,
            len(desired.pickup),
            len(desired.dropoff),
        )

        actual = await self.read(vehicle_id)
        if actual != desired:
            _logger.error(
                "Association read-back mismatch for %s: expected=%s actual=%s",
                vehicle_id,
                desired.as_dict(),
                actual.as_dict(),
            )
            raise VerifiedInconsistencyError(
                "Vehicle locations were changed concurrently and do not match what was saved. Please try again.",
                vehicle_id=vehicle_id,
                expected=desired.as_dict(),
                actual=actual.as_dict(),
            )
        return actual
