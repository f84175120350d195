import asyncio
import json

import httpx
import pytest

from command_center.middleend.client import CommandCenterClient


def _run_with(handler, call):
    async def scenario():
        async with CommandCenterClient(
            "http://cc.test/", api_key="k", transport=httpx.MockTransport(handler)
        ) as client:
            return await call(client)

    return asyncio.run(scenario())


def test_list_operations_sends_sync_flag():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"success": True, "data": [], "meta": {}})

    _run_with(handler, lambda c: c.list_operations("conn-1", sync_status=False))

    request = requests[0]
    assert request.url.path == "/api/dgx/operations"
    assert request.url.params["connection_id"] == "conn-1"
    assert request.url.params["sync_status"] == "false"
    assert request.headers["Authorization"] == "Bearer k"


def test_sync_operations_returns_summary():
    def handler(request):
        assert json.loads(request.content) == {"connection_id": "conn-1"}
        return httpx.Response(
            200, json={"success": True, "data": {"checked": 2, "synced": 1, "errors": 0}}
        )

    summary = _run_with(handler, lambda c: c.sync_operations("conn-1"))
    assert summary == {"checked": 2, "synced": 1, "errors": 0}


def test_error_status_raises():
    def handler(request):
        return httpx.Response(409, json={"detail": {"title": "Conflict"}})

    with pytest.raises(httpx.HTTPStatusError):
        _run_with(handler, lambda c: c.sync_operations("conn-1"))
