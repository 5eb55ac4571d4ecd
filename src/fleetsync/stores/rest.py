"""aiohttp adapters for a PostgREST relational store and a storage bucket."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from urllib.parse import quote, unquote

import aiohttp

from fleetsync._constants import IMAGE_CACHE_CONTROL
from fleetsync._redact import redact_for_log
from fleetsync.config import FleetSyncConfig
from fleetsync.exceptions import BlobStoreError, FleetSyncConfigError, StoreError
from fleetsync.stores.base import BlobDeleteStatus, Filters, Row, is_membership, raise_for_store_code

_logger = logging.getLogger(__name__)

_REST_PATH = "/rest/v1"
_STORAGE_PATH = "/storage/v1/object"


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), default=_json_default)


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _quoted(value: Any) -> str:
    text = _literal(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def build_filter_params(filters: Filters | None) -> list[tuple[str, str]]:
    """Translate column filters into PostgREST query parameters.

    Equality becomes ``col=eq.value`` (``is.null`` for ``None``),
    membership becomes ``col=in.("a","b")``.
    """
    params: list[tuple[str, str]] = []
    for column, value in (filters or {}).items():
        if is_membership(value):
            members = ",".join(_quoted(item) for item in sorted(value, key=str))
            params.append((column, f"in.({members})"))
        elif value is None:
            params.append((column, "is.null"))
        else:
            params.append((column, f"eq.{_literal(value)}"))
    return params


def _require_base_url(config: FleetSyncConfig) -> str:
    if not config.base_url:
        raise FleetSyncConfigError("FLEETSYNC_BASE_URL is required for the HTTP store adapters")
    return config.base_url.rstrip("/")


def _auth_headers(config: FleetSyncConfig) -> dict[str, str]:
    headers: dict[str, str] = {}
    if config.api_key:
        headers["apikey"] = config.api_key
        headers["authorization"] = f"Bearer {config.api_key}"
    return headers


class PostgrestStore:
    """Relational store backed by a PostgREST endpoint.

    Parameters
    ----------
    config : FleetSyncConfig
        Supplies ``base_url`` and ``api_key``.
    http_session : aiohttp.ClientSession
        Session owned by the caller.
    access_token : str or None
        End-user JWT. When set, it replaces the service key as bearer
        token so row-level security applies to the caller.
    """

    def __init__(
        self,
        config: FleetSyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        access_token: str | None = None,
    ) -> None:
        self._base_url = _require_base_url(config)
        self._http = http_session
        self._headers = _auth_headers(config)
        if access_token:
            self._headers["authorization"] = f"Bearer {access_token}"

    async def select(
        self,
        table: str,
        *,
        filters: Filters | None = None,
        columns: Sequence[str] | None = None,
    ) -> list[Row]:
        params = [("select", ",".join(columns) if columns else "*"), *build_filter_params(filters)]
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        if not rows:
            return []
        return await self._request("POST", table, body=[dict(row) for row in rows])

    async def update(self, table: str, values: Mapping[str, Any], *, filters: Filters) -> list[Row]:
        return await self._request("PATCH", table, params=build_filter_params(filters), body=dict(values))

    async def delete(self, table: str, *, filters: Filters) -> list[Row]:
        return await self._request("DELETE", table, params=build_filter_params(filters))

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> list[Row]:
        url = f"{self._base_url}{_REST_PATH}/{table}"
        headers = {
            **self._headers,
            "accept": "application/json",
            "content-type": "application/json",
        }
        if method != "GET":
            headers["prefer"] = "return=representation"
        data = _dumps(body) if body is not None else None

        _logger.debug("%s %s params=%s body=%s", method, url, params, redact_for_log(body))

        try:
            async with self._http.request(method, url, params=params, data=data, headers=headers) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise StoreError(f"Request to {table} failed: {exc}", table=table) from exc

        if status >= 400:
            self._raise_for_error(table, status, text)

        if not text.strip():
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Invalid JSON from {table}: {text[:200]}", table=table) from exc
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise StoreError(f"Unexpected payload from {table}: {text[:200]}", table=table)
        return payload

    @staticmethod
    def _raise_for_error(table: str, status: int, text: str) -> None:
        try:
            error = json.loads(text)
        except json.JSONDecodeError:
            error = None
        if not isinstance(error, dict):
            raise StoreError(f"HTTP {status} from {table}: {text[:200]}", code=str(status), table=table)
        code = str(error.get("code") or status)
        message = str(error.get("message") or text[:200])
        hint = str(error.get("hint") or "")
        _logger.debug("Store error on %s: code=%s message=%s", table, code, message)
        raise_for_store_code(table=table, code=code, message=message, hint=hint)


class StorageBucket:
    """Blob store backed by a storage bucket with public read URLs."""

    def __init__(
        self,
        config: FleetSyncConfig,
        http_session: aiohttp.ClientSession,
        *,
        bucket: str | None = None,
    ) -> None:
        self._base_url = _require_base_url(config)
        self._http = http_session
        self._headers = _auth_headers(config)
        self._bucket = bucket or config.storage_bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    def public_url(self, path: str) -> str:
        return f"{self._base_url}{_STORAGE_PATH}/public/{self._bucket}/{quote(path.lstrip('/'))}"

    def path_for(self, url: str) -> str | None:
        """Object path for a public URL of this bucket, or ``None``."""
        prefix = f"{self._base_url}{_STORAGE_PATH}/public/{self._bucket}/"
        if not url.startswith(prefix):
            return None
        path = unquote(url[len(prefix) :].split("?", 1)[0])
        return path or None

    async def upload(self, data: bytes, content_type: str, path: str) -> str:
        key = path.lstrip("/")
        url = f"{self._base_url}{_STORAGE_PATH}/{self._bucket}/{quote(key)}"
        headers = {
            **self._headers,
            "content-type": content_type,
            "cache-control": f"max-age={IMAGE_CACHE_CONTROL}",
            "x-upsert": "false",
        }
        _logger.debug("POST %s (%d bytes)", url, len(data))
        try:
            async with self._http.post(url, data=data, headers=headers) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise BlobStoreError(
                        f"HTTP {resp.status} uploading {key}: {text[:200]}",
                        path=key,
                        status_code=resp.status,
                    )
        except aiohttp.ClientError as exc:
            raise BlobStoreError(f"Upload of {key} failed: {exc}", path=key) from exc
        return self.public_url(key)

    async def delete(self, url: str) -> BlobDeleteStatus:
        path = self.path_for(url)
        if path is None:
            raise BlobStoreError(f"URL does not belong to bucket {self._bucket}: {url}", path=url)
        endpoint = f"{self._base_url}{_STORAGE_PATH}/{self._bucket}"
        headers = {**self._headers, "content-type": "application/json"}
        _logger.debug("DELETE %s prefixes=%s", endpoint, path)
        try:
            async with self._http.request(
                "DELETE",
                endpoint,
                data=_dumps({"prefixes": [path]}),
                headers=headers,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise BlobStoreError(f"Delete of {path} failed: {exc}", path=path) from exc

        if status == 404:
            return BlobDeleteStatus.NOT_FOUND
        if status >= 400:
            raise BlobStoreError(f"HTTP {status} deleting {path}: {text[:200]}", path=path, status_code=status)
        try:
            removed = json.loads(text) if text.strip() else []
        except json.JSONDecodeError as exc:
            raise BlobStoreError(f"Invalid JSON deleting {path}: {text[:200]}", path=path) from exc
        if isinstance(removed, list) and not removed:
            return BlobDeleteStatus.NOT_FOUND
        return BlobDeleteStatus.DELETED
