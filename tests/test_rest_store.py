from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import pytest

from fleetsync.config import FleetSyncConfig
from fleetsync.exceptions import BlobStoreError, CheckViolationError, FleetSyncConfigError, UniqueViolationError
from fleetsync.stores import BlobDeleteStatus, PostgrestStore, StorageBucket
from fleetsync.stores.rest import build_filter_params

_CONFIG = FleetSyncConfig(base_url="https://db.example.com/", api_key="service-key")


class _FakeResponse:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._text = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        return None


class _FakeSession:
    def __init__(self, *responses: _FakeResponse) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._responses.pop(0)

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        return self.request("POST", url, **kwargs)


def test_build_filter_params() -> None:
    params = build_filter_params({"id": ["b", "a"], "company_id": "c1", "deleted_at": None, "is_hq": True})
    assert params == [
        ("id", 'in.("a","b")'),
        ("company_id", "eq.c1"),
        ("deleted_at", "is.null"),
        ("is_hq", "eq.true"),
    ]


def test_adapters_require_base_url() -> None:
    with pytest.raises(FleetSyncConfigError):
        PostgrestStore(FleetSyncConfig(), _FakeSession())  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_select_sends_filters_and_auth_headers() -> None:
    session = _FakeSession(_FakeResponse(200, [{"id": "loc-1"}]))
    store = PostgrestStore(_CONFIG, session)  # type: ignore[arg-type]

    rows = await store.select("locations", filters={"id": ["loc-1"]}, columns=("id", "company_id"))

    assert rows == [{"id": "loc-1"}]
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://db.example.com/rest/v1/locations"
    assert ("select", "id,company_id") in call["params"]
    assert ("id", 'in.("loc-1")') in call["params"]
    assert call["headers"]["apikey"] == "service-key"
    assert "prefer" not in call["headers"]


@pytest.mark.asyncio
async def test_insert_serializes_decimals_and_asks_for_representation() -> None:
    session = _FakeSession(_FakeResponse(201, [{"id": "v1", "daily_rate": 45.0}]))
    store = PostgrestStore(_CONFIG, session, access_token="user-jwt")  # type: ignore[arg-type]

    rows = await store.insert("vehicles", [{"id": "v1", "daily_rate": Decimal("45.00")}])

    assert rows == [{"id": "v1", "daily_rate": 45.0}]
    call = session.calls[0]
    assert json.loads(call["data"]) == [{"id": "v1", "daily_rate": "45.00"}]
    assert call["headers"]["prefer"] == "return=representation"
    assert call["headers"]["authorization"] == "Bearer user-jwt"


@pytest.mark.asyncio
async def test_store_error_codes_are_mapped() -> None:
    session = _FakeSession(
        _FakeResponse(409, {"code": "23505", "message": "duplicate key", "hint": None}),
        _FakeResponse(400, {"code": "23514", "message": 'violates check constraint "vehicles_seats_check"'}),
    )
    store = PostgrestStore(_CONFIG, session)  # type: ignore[arg-type]

    with pytest.raises(UniqueViolationError) as unique:
        await store.insert("vehicles", [{"id": "v1"}])
    with pytest.raises(CheckViolationError) as check:
        await store.update("vehicles", {"seats": 50}, filters={"id": "v1"})

    assert unique.value.table == "vehicles"
    assert "seats" in str(check.value)


@pytest.mark.asyncio
async def test_bucket_upload_returns_public_url() -> None:
    session = _FakeSession(_FakeResponse(200, {"Key": "vehicle-images/v1/a.png"}))
    bucket = StorageBucket(_CONFIG, session)  # type: ignore[arg-type]

    url = await bucket.upload(b"data", "image/png", "v1/a.png")

    assert url == "https://db.example.com/storage/v1/object/public/vehicle-images/v1/a.png"
    call = session.calls[0]
    assert call["url"] == "https://db.example.com/storage/v1/object/vehicle-images/v1/a.png"
    assert call["headers"]["content-type"] == "image/png"
    assert call["data"] == b"data"


@pytest.mark.asyncio
async def test_bucket_upload_error_raises() -> None:
    session = _FakeSession(_FakeResponse(413, "Payload too large"))
    bucket = StorageBucket(_CONFIG, session)  # type: ignore[arg-type]

    with pytest.raises(BlobStoreError) as excinfo:
        await bucket.upload(b"data", "image/png", "v1/a.png")
    assert excinfo.value.status_code == 413


@pytest.mark.asyncio
async def test_bucket_delete_reports_missing_objects() -> None:
    session = _FakeSession(_FakeResponse(200, [{"name": "v1/a.png"}]), _FakeResponse(200, []))
    bucket = StorageBucket(_CONFIG, session)  # type: ignore[arg-type]
    url = bucket.public_url("v1/a.png")

    assert await bucket.delete(url) == BlobDeleteStatus.DELETED
    assert await bucket.delete(url) == BlobDeleteStatus.NOT_FOUND
    assert json.loads(session.calls[0]["data"]) == {"prefixes": ["v1/a.png"]}


@pytest.mark.asyncio
async def test_bucket_delete_rejects_foreign_urls() -> None:
    bucket = StorageBucket(_CONFIG, _FakeSession())  # type: ignore[arg-type]

    with pytest.raises(BlobStoreError):
        await bucket.delete("https://elsewhere.example/a.png")
