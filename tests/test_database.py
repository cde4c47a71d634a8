"""Tests for database.py — store operations and serialized writes."""
import asyncio
import uuid

import pytest

from voxdispatch.models import RequestLog, Service, STATUS_UNHEALTHY, utcnow


def _log(transcript):
    return RequestLog(
        id=str(uuid.uuid4()),
        transcript=transcript,
        selected_service="svc",
        endpoint={"method": "GET", "path": "/x"},
        arguments={},
        confidence=1.0,
        timestamp=utcnow(),
        result="success",
    )


def _service(name):
    return Service(
        id=str(uuid.uuid4()),
        name=name,
        description="d",
        base_url=f"http://{name}.local",
        api_key="k",
        endpoints=[{"method": "GET", "path": "/x"}],
        registered_at=utcnow(),
    )


class TestStore:
    @pytest.mark.asyncio
    async def test_concurrent_appends_all_persist(self, store):
        await asyncio.gather(*(store.add(_log(f"t{i}")) for i in range(25)))
        logs = await store.all(RequestLog)
        assert len(logs) == 25
        assert {entry.transcript for entry in logs} == {f"t{i}" for i in range(25)}

    @pytest.mark.asyncio
    async def test_update_in_place(self, store):
        service = await store.add(_service("svc"))
        updated = await store.update(Service, service.id, status=STATUS_UNHEALTHY)
        assert updated.status == STATUS_UNHEALTHY
        assert (await store.get(Service, service.id)).status == STATUS_UNHEALTHY
        assert (await store.get(Service, service.id)).name == "svc"

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, store):
        assert await store.update(Service, "missing", status=STATUS_UNHEALTHY) is None

    @pytest.mark.asyncio
    async def test_delete(self, store):
        service = await store.add(_service("svc"))
        removed = await store.delete(Service, service.id)
        assert removed.id == service.id
        assert await store.get(Service, service.id) is None
        assert await store.delete(Service, service.id) is None

    @pytest.mark.asyncio
    async def test_filters(self, store):
        a = await store.add(_service("a"))
        await store.add(_service("b"))
        await store.update(Service, a.id, status=STATUS_UNHEALTHY)
        assert [s.name for s in await store.all(Service, status=STATUS_UNHEALTHY)] == ["a"]

    @pytest.mark.asyncio
    async def test_json_columns_round_trip(self, store):
        entry = _log("json")
        entry.arguments = {"city": "Berlin", "days": [1, 2]}
        entry.response = {"nested": {"ok": True}}
        await store.add(entry)
        loaded = await store.get(RequestLog, entry.id)
        assert loaded.arguments == {"city": "Berlin", "days": [1, 2]}
        assert loaded.response == {"nested": {"ok": True}}
