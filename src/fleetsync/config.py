"""Engine configuration for fleetsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleetsync._constants import (
    DEFAULT_STORAGE_BUCKET,
    LOCATION_ID_PATTERN,
    MAX_IMAGE_BYTES,
    MIN_MODEL_YEAR,
    SENTINEL_LOCATION_MARKERS,
    UPLOAD_DELAY_SECONDS,
)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class OperationTimeouts:
    """Per-operation time budgets in seconds.

    Every call to an external store is bounded by one of these.
    """

    query: float = 20.0
    insert: float = 30.0
    update: float = 30.0
    delete: float = 20.0
    upload: float = 60.0
    default: float = 30.0


@dataclasses.dataclass(frozen=True)
class FleetSyncConfig:
    """Engine configuration.

    Parameters
    ----------
    base_url : str or None
        Base URL of the hosted data service (PostgREST + storage).
        Only needed by the HTTP store adapters.
    api_key : str or None
        Service API key sent as ``apikey`` and bearer token.
    storage_bucket : str
        Blob storage bucket holding vehicle images.
    timeouts : OperationTimeouts
        Time budgets applied to every external call.
    upload_delay : float
        Pause in seconds between consecutive image uploads of one batch.
    max_image_bytes : int
        Largest accepted decoded image payload.
    min_model_year : int
        Oldest accepted model year. The newest is next calendar year.
    location_id_pattern : str
        Regular expression a location id must match to be considered.
        Non-matching ids are discarded, not reported.
    sentinel_location_markers : frozenset[str]
        Form placeholder values that are never persisted.
    rollback_partial_create : bool
        Delete the freshly inserted vehicle row when a later create step
        fails. When disabled the row stays and a ``PartialCreateError``
        is raised.
    """

    base_url: str | None = None
    api_key: str | None = None
    storage_bucket: str = DEFAULT_STORAGE_BUCKET
    timeouts: OperationTimeouts = dataclasses.field(default_factory=OperationTimeouts)
    upload_delay: float = UPLOAD_DELAY_SECONDS
    max_image_bytes: int = MAX_IMAGE_BYTES
    min_model_year: int = MIN_MODEL_YEAR
    location_id_pattern: str = LOCATION_ID_PATTERN
    sentinel_location_markers: frozenset[str] = SENTINEL_LOCATION_MARKERS
    rollback_partial_create: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetSyncConfig:
        """Create configuration from environment variables.

        Reads ``FLEETSYNC_BASE_URL``, ``FLEETSYNC_API_KEY`` and optional
        ``FLEETSYNC_*`` tuning variables. Explicit keyword arguments
        override environment values.
        """
        env = os.environ

        timeout_kwargs: dict[str, float] = {}
        _ENV_TIMEOUT_MAP = {
            "FLEETSYNC_TIMEOUT_QUERY": "query",
            "FLEETSYNC_TIMEOUT_INSERT": "insert",
            "FLEETSYNC_TIMEOUT_UPDATE": "update",
            "FLEETSYNC_TIMEOUT_DELETE": "delete",
            "FLEETSYNC_TIMEOUT_UPLOAD": "upload",
            "FLEETSYNC_TIMEOUT_DEFAULT": "default",
        }
        for env_key, field_name in _ENV_TIMEOUT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                timeout_kwargs[field_name] = float(val)

        timeout_overrides = overrides.pop("timeouts", None)
        if isinstance(timeout_overrides, dict):
            timeout_kwargs.update(timeout_overrides)
        elif isinstance(timeout_overrides, OperationTimeouts):
            timeout_kwargs = dataclasses.asdict(timeout_overrides)

        config_kwargs: dict[str, Any] = {"timeouts": OperationTimeouts(**timeout_kwargs)}

        _ENV_CONFIG_MAP = {
            "FLEETSYNC_BASE_URL": "base_url",
            "FLEETSYNC_API_KEY": "api_key",
            "FLEETSYNC_STORAGE_BUCKET": "storage_bucket",
            "FLEETSYNC_LOCATION_ID_PATTERN": "location_id_pattern",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        delay_env = env.get("FLEETSYNC_UPLOAD_DELAY")
        if delay_env is not None and "upload_delay" not in overrides:
            config_kwargs["upload_delay"] = float(delay_env)

        max_bytes_env = env.get("FLEETSYNC_MAX_IMAGE_BYTES")
        if max_bytes_env is not None and "max_image_bytes" not in overrides:
            config_kwargs["max_image_bytes"] = int(max_bytes_env)

        if "rollback_partial_create" not in overrides:
            config_kwargs["rollback_partial_create"] = _env_bool(
                env.get("FLEETSYNC_ROLLBACK_PARTIAL_CREATE"),
                True,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
