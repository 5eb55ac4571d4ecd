"""Caller input for vehicle create/update.

The payload is deliberately loose: scalar fields stay unchecked here so
the field validator can report every violation at once, and the image
and location lists keep whatever the form sent until the media manager
and location resolver interpret them.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from fleetsync._constants import IMAGE_EXTENSIONS, MAX_IMAGE_BYTES
from fleetsync.exceptions import ImageDecodeError
from fleetsync.models._base import FleetBaseModel

_INLINE_PREFIX = "data:"
_BASE64_MARKER = ";base64"


@dataclasses.dataclass(frozen=True)
class DecodedImage:
    """Raw bytes of an inline image, ready for upload."""

    content_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return IMAGE_EXTENSIONS.get(self.content_type, "bin")

    @property
    def size(self) -> int:
        return len(self.data)


class InlineImage(FleetBaseModel):
    """A new image sent inline as a ``data:`` URL."""

    data_url: str

    def decode(self, *, max_bytes: int = MAX_IMAGE_BYTES) -> DecodedImage:
        """Decode the data URL.

        Raises
        ------
        ImageDecodeError
            The payload is not a base64 ``data:image/*`` URL, is empty,
            or exceeds *max_bytes* once decoded.
        """
        header, sep, body = self.data_url.partition(",")
        if not sep or not header.startswith(_INLINE_PREFIX) or not header.endswith(_BASE64_MARKER):
            raise ImageDecodeError("Image payload is not a base64 data URL")

        content_type = header[len(_INLINE_PREFIX) :].split(";", 1)[0].strip().lower()
        if not content_type.startswith("image/"):
            raise ImageDecodeError("Invalid file type. Please upload an image file.")

        body = body.strip()
        if not body:
            raise ImageDecodeError("Image payload is empty")
        # Cheap upper bound before decoding a potentially huge body.
        if len(body) * 3 // 4 > max_bytes + 3:
            raise ImageDecodeError(f"File is too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")

        try:
            data = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ImageDecodeError("Image payload is not valid base64") from exc

        if not data:
            raise ImageDecodeError("Image payload is empty")
        if len(data) > max_bytes:
            raise ImageDecodeError(f"File is too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
        return DecodedImage(content_type=content_type, data=data)


class StoredImage(FleetBaseModel):
    """A reference to an image already in blob storage."""

    url: str


ImageEntry = InlineImage | StoredImage


def image_entry(value: Any) -> Any:
    """Coerce a form value (string or dict) into an image entry mapping."""
    if isinstance(value, (InlineImage, StoredImage)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(_INLINE_PREFIX):
            return InlineImage(data_url=text)
        return StoredImage(url=text)
    return value


class VehiclePayload(FleetBaseModel):
    """Create/update input as sent by the dashboard form."""

    make: str | None = None
    model: str | None = None
    year: Any = None
    license_plate: str | None = None
    color: str | None = None
    transmission: str | None = None
    fuel_type: str | None = None
    seats: Any = None
    daily_rate: Any = None
    deposit_required: Any = None
    status: str | None = None
    features: list[str | None] | None = None
    images: list[ImageEntry] | None = Field(
        default=None,
        validation_alias=AliasChoices("images", "imageUrls", "image_urls"),
    )
    """Desired ordered image list. ``None`` leaves stored images untouched on update."""
    remove_images: bool = False
    """Explicit request to allow an empty final image list."""
    pickup_locations: list[Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("pickupLocations", "pickupLocationIds", "pickup_locations", "pickup_location_ids"),
    )
    dropoff_locations: list[Any] | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "dropoffLocations",
            "dropoffLocationIds",
            "dropoff_locations",
            "dropoff_location_ids",
        ),
    )

    @field_validator("images", mode="before")
    @classmethod
    def _coerce_images(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (str, dict)):
            value = [value]
        entries = []
        for item in value:
            if item is None or (isinstance(item, str) and not item.strip()):
                continue
            entries.append(image_entry(item))
        return entries

    @field_validator("daily_rate", "deposit_required", mode="before")
    @classmethod
    def _coerce_money(cls, value: Any) -> Any:
        if isinstance(value, float):
            return Decimal(repr(value))
        return value
