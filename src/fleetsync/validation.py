"""Field validation for vehicle payloads.

Pure functions: no store access, no clock access beyond the optional
``today`` argument. Every violation is collected before reporting so
the caller can show all field errors at once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import pydantic

from fleetsync._constants import MAX_SEATS, MIN_MODEL_YEAR, MIN_SEATS
from fleetsync.exceptions import FieldViolation, VehicleValidationError
from fleetsync.models import FuelType, Transmission, VehicleFields, VehiclePayload, VehicleStatus

_logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def normalize_plate(value: str) -> str:
    """Canonical form of a licence plate: trimmed, upper case."""
    return value.strip().upper()


def normalize_features(values: Iterable[str | None] | None) -> tuple[str, ...] | None:
    """Trim tags, drop blanks and duplicates while keeping first-seen order."""
    if values is None:
        return None
    seen: dict[str, None] = {}
    for value in values:
        if value is None:
            continue
        tag = str(value).strip()
        if tag:
            seen.setdefault(tag, None)
    return tuple(seen) or None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else None
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _to_cents(value: Decimal) -> Decimal | None:
    """*value* rounded half-up to cents, or None when it has too many digits."""
    try:
        return value.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def _as_enum(enum_cls: type, value: Any) -> Any:
    if not isinstance(value, str):
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        return None


def collect_violations(
    payload: VehiclePayload,
    *,
    min_year: int = MIN_MODEL_YEAR,
    today: date | None = None,
) -> list[FieldViolation]:
    """Every field-level violation in *payload*, in form order."""
    violations, _ = _check(payload, min_year=min_year, today=today)
    return violations


def validate_vehicle(
    payload: VehiclePayload | dict[str, Any],
    *,
    min_year: int = MIN_MODEL_YEAR,
    today: date | None = None,
) -> VehicleFields:
    """Validate and normalize the scalar part of a vehicle payload.

    Parameters
    ----------
    payload : VehiclePayload or dict
        Form input. A dict is parsed with :class:`VehiclePayload` first.
    min_year : int
        Oldest accepted model year.
    today : date or None
        Reference date for the newest accepted model year
        (``today.year + 1``). Defaults to the current date.

    Returns
    -------
    VehicleFields
        Normalized record: plate upper-cased, money quantized to cents,
        feature tags de-duplicated.

    Raises
    ------
    VehicleValidationError
        With every violation found.
    """
    if not isinstance(payload, VehiclePayload):
        payload = parse_payload(payload)
    violations, fields = _check(payload, min_year=min_year, today=today)
    if violations:
        _logger.debug("Vehicle payload rejected: %s", [v.field for v in violations])
        raise VehicleValidationError(violations)
    assert fields is not None
    return fields


def parse_payload(data: dict[str, Any]) -> VehiclePayload:
    """Parse raw form data, turning model errors into field violations."""
    try:
        return VehiclePayload.model_validate(data)
    except pydantic.ValidationError as exc:
        violations = [
            FieldViolation(
                field=".".join(str(part) for part in error["loc"]) or "payload",
                message=error["msg"],
            )
            for error in exc.errors()
        ]
        raise VehicleValidationError(violations) from exc


def _check(
    payload: VehiclePayload,
    *,
    min_year: int,
    today: date | None,
) -> tuple[list[FieldViolation], VehicleFields | None]:
    violations: list[FieldViolation] = []
    max_year = (today or date.today()).year + 1

    make = _text(payload.make)
    if not make:
        violations.append(FieldViolation("make", "Make is required"))
    model = _text(payload.model)
    if not model:
        violations.append(FieldViolation("model", "Model is required"))

    year = _as_int(payload.year)
    if year is None or not min_year <= year <= max_year:
        violations.append(FieldViolation("year", f"Valid year is required ({min_year}-{max_year})"))

    plate = normalize_plate(payload.license_plate or "")
    if not plate:
        violations.append(FieldViolation("licensePlate", "License plate is required"))

    transmission = _as_enum(Transmission, payload.transmission)
    if transmission is None:
        violations.append(FieldViolation("transmission", "Valid transmission type is required (automatic or manual)"))

    fuel_type = _as_enum(FuelType, payload.fuel_type)
    if fuel_type is None:
        violations.append(FieldViolation("fuelType", "Valid fuel type is required"))

    status = VehicleStatus.ACTIVE
    if payload.status is not None and _text(payload.status):
        status = _as_enum(VehicleStatus, payload.status)
        if status is None:
            violations.append(FieldViolation("status", "Status must be active, maintenance, or retired"))

    seats = _as_int(payload.seats)
    if seats is None or not MIN_SEATS <= seats <= MAX_SEATS:
        violations.append(FieldViolation("seats", f"Valid number of seats is required ({MIN_SEATS}-{MAX_SEATS})"))

    daily_rate = _as_decimal(payload.daily_rate)
    if daily_rate is None or daily_rate <= 0:
        violations.append(FieldViolation("dailyRate", "Daily rate must be greater than 0"))
    else:
        daily_rate = _to_cents(daily_rate)
        if daily_rate is None:
            violations.append(FieldViolation("dailyRate", "Daily rate is out of range"))
        elif daily_rate <= 0:
            violations.append(FieldViolation("dailyRate", "Daily rate must be greater than 0"))

    deposit: Decimal | None = None
    if payload.deposit_required is not None and not (
        isinstance(payload.deposit_required, str) and not payload.deposit_required.strip()
    ):
        deposit = _as_decimal(payload.deposit_required)
        if deposit is None or deposit < 0:
            violations.append(FieldViolation("depositRequired", "Deposit required cannot be negative"))
        else:
            deposit = _to_cents(deposit)
            if deposit is None:
                violations.append(FieldViolation("depositRequired", "Deposit required is out of range"))

    if violations:
        return violations, None

    fields = VehicleFields(
        make=make,
        model=model,
        year=year,
        license_plate=plate,
        color=_text(payload.color) or None,
        transmission=transmission,
        fuel_type=fuel_type,
        seats=seats,
        daily_rate=daily_rate,
        deposit_required=deposit,
        status=status,
        features=normalize_features(payload.features),
    )
    return [], fields
