from __future__ import annotations

from decimal import Decimal

import pytest
from _helpers import data_url

from fleetsync.exceptions import ConflictError, ErrorKind, ImageDecodeError
from fleetsync.models import (
    InlineImage,
    LocationAssignment,
    StoredImage,
    Vehicle,
    VehiclePayload,
    VehicleResult,
)

_ROW = {
    "id": "veh-1",
    "company_id": "company-a",
    "make": "Toyota",
    "model": "Corolla",
    "year": 2023,
    "license_plate": "AB-123-CD",
    "transmission": "automatic",
    "fuel_type": "petrol",
    "seats": 5,
    "daily_rate": "45.00",
    "status": "active",
    "features": [],
    "image_urls": "https://cdn.example/a.png, https://cdn.example/b.png",
    "created_at": "2026-01-15T10:00:00+00:00",
}


def test_vehicle_from_row_parses_store_shapes() -> None:
    assignment = LocationAssignment(pickup=frozenset({"loc-2", "loc-1"}))

    vehicle = Vehicle.from_row(_ROW, assignment)

    assert vehicle.image_urls == ("https://cdn.example/a.png", "https://cdn.example/b.png")
    assert vehicle.primary_image_url == "https://cdn.example/a.png"
    assert vehicle.features is None
    assert vehicle.daily_rate == Decimal("45.00")
    assert vehicle.pickup_location_ids == ("loc-1", "loc-2")
    assert vehicle.dropoff_location_ids == ()
    assert vehicle.locations == assignment
    assert vehicle.raw["license_plate"] == "AB-123-CD"
    assert "raw" not in vehicle.model_dump()


def test_vehicle_fields_round_trip_to_row() -> None:
    fields = Vehicle.from_row(_ROW).fields()
    row = fields.to_row()
    assert row["transmission"] == "automatic"
    assert row["daily_rate"] == Decimal("45.00")
    assert row["features"] is None


def test_payload_accepts_camel_case_and_legacy_aliases() -> None:
    payload = VehiclePayload.model_validate(
        {
            "licensePlate": "ab-1",
            "imageUrls": ["https://cdn.example/a.png", "", data_url()],
            "pickupLocationIds": ["loc-1"],
            "dropoffLocations": ["CUSTOM_DROPOFF"],
            "removeImages": True,
        }
    )

    assert payload.license_plate == "ab-1"
    assert isinstance(payload.images[0], StoredImage)
    assert isinstance(payload.images[1], InlineImage)
    assert len(payload.images) == 2
    assert payload.pickup_locations == ["loc-1"]
    assert payload.dropoff_locations == ["CUSTOM_DROPOFF"]
    assert payload.remove_images is True


def test_payload_float_money_keeps_decimal_text() -> None:
    payload = VehiclePayload.model_validate({"dailyRate": 45.1})
    assert payload.daily_rate == Decimal("45.1")


def test_inline_image_decode() -> None:
    image = InlineImage(data_url=data_url(b"png-bytes", "image/png")).decode()
    assert image.content_type == "image/png"
    assert image.data == b"png-bytes"
    assert image.extension == "png"


@pytest.mark.parametrize(
    ("url", "message"),
    [
        ("https://cdn.example/a.png", "not a base64 data URL"),
        (data_url(b"hello", "text/plain"), "Invalid file type"),
        ("data:image/png;base64,", "empty"),
        ("data:image/png;base64,%%%%", "not valid base64"),
    ],
)
def test_inline_image_decode_rejects_bad_payloads(url: str, message: str) -> None:
    with pytest.raises(ImageDecodeError, match=message):
        InlineImage(data_url=url).decode()


def test_inline_image_decode_enforces_size_limit() -> None:
    with pytest.raises(ImageDecodeError, match="too large"):
        InlineImage(data_url=data_url(b"x" * 4096)).decode(max_bytes=1024)


def test_assignment_rows_round_trip() -> None:
    assignment = LocationAssignment(pickup=frozenset({"b", "a"}), dropoff=frozenset({"a"}))

    rows = assignment.to_rows("veh-1")

    assert rows == [
        {"vehicle_id": "veh-1", "location_id": "a", "role": "pickup"},
        {"vehicle_id": "veh-1", "location_id": "b", "role": "pickup"},
        {"vehicle_id": "veh-1", "location_id": "a", "role": "dropoff"},
    ]
    assert LocationAssignment.from_rows(rows) == assignment


def test_failed_result_carries_kind_and_details() -> None:
    result = VehicleResult.failed(ConflictError("duplicate plate", field="licensePlate", value="AB-1"))

    assert result.success is False
    assert result.error == "duplicate plate"
    assert result.error_kind == ErrorKind.CONFLICT
    assert result.details == {"field": "licensePlate", "value": "AB-1"}
    assert result.data is None
