"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Tables
# ------------------------------------------------------------------

VEHICLES_TABLE = "vehicles"
LOCATIONS_TABLE = "locations"
VEHICLE_LOCATIONS_TABLE = "vehicle_locations"

# ------------------------------------------------------------------
# Postgres error codes surfaced by the relational store
# ------------------------------------------------------------------

UNIQUE_VIOLATION_CODE = "23505"
CHECK_VIOLATION_CODE = "23514"
FOREIGN_KEY_VIOLATION_CODE = "23503"
PERMISSION_DENIED_CODE = "42501"

# ------------------------------------------------------------------
# Vehicle field bounds
# ------------------------------------------------------------------

MIN_MODEL_YEAR = 1990
MIN_SEATS = 1
MAX_SEATS = 20

# ------------------------------------------------------------------
# Location references
# ------------------------------------------------------------------

# Marker values the dashboard form puts in a location list for
# "custom location" entries. They are never real references.
CUSTOM_PICKUP_MARKER = "CUSTOM_PICKUP"
CUSTOM_DROPOFF_MARKER = "CUSTOM_DROPOFF"
SENTINEL_LOCATION_MARKERS: frozenset[str] = frozenset({CUSTOM_PICKUP_MARKER, CUSTOM_DROPOFF_MARKER})

# Accepts UUIDs as well as short slug identifiers.
LOCATION_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$"

HQ_LOCATION_PREFIX = "HQ - "
DEFAULT_LOCATION_COUNTRY = "Albania"

# ------------------------------------------------------------------
# Media
# ------------------------------------------------------------------

DEFAULT_STORAGE_BUCKET = "vehicle-images"
MAX_IMAGE_BYTES = 10 * 1024 * 1024
UPLOAD_DELAY_SECONDS = 0.1
IMAGE_CACHE_CONTROL = "3600"

IMAGE_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
    "image/heic": "heic",
    "image/svg+xml": "svg",
}
