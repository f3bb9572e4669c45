import asyncio
import json
import time
from typing import Any, AsyncIterator, Callable, Dict, List

import httpx
import pytest

from ghlops.errors import (
    AuthError,
    NetworkError,
    ProtocolError,
    RateLimitError,
    RemoteInternalError,
    ScopeError,
    UnknownToolError,
    ValidationError,
)
from ghlops.mcp.translator import ProtocolTranslator
from ghlops.models import Credentials

URL = "https://mcp.test/mcp/"
CREDS = Credentials(token="pit-123", location_id="loc_1")


def make_translator(handler: Callable[[httpx.Request], httpx.Response]) -> ProtocolTranslator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProtocolTranslator(URL, timeout_seconds=5, client=client)


def rpc_result(request: httpx.Request, result: Any) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.mark.asyncio
async def test_invoke_sends_jsonrpc_envelope_and_headers() -> None:
    """invoke posts a tools/call envelope with auth and location headers."""
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return rpc_result(request, {"contacts": []})

    translator = make_translator(handler)
    result = await translator.invoke("contacts_get-contacts", {"limit": 10}, CREDS)

    assert result == {"contacts": []}
    request = seen[0]
    assert str(request.url) == URL
    assert request.headers["Authorization"] == "Bearer pit-123"
    assert request.headers["locationId"] == "loc_1"
    assert "text/event-stream" in request.headers["Accept"]
    body = json.loads(request.content)
    assert body["jsonrpc"] == "2.0"
    assert body["method"] == "tools/call"
    assert body["params"] == {"name": "contacts_get-contacts", "arguments": {"limit": 10}}
    assert isinstance(body["id"], int)


@pytest.mark.asyncio
async def test_location_header_omitted_when_not_set() -> None:
    seen: Dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["req"] = request
        return rpc_result(request, {})

    translator = make_translator(handler)
    await translator.invoke("locations_get-location", {}, Credentials(token="t"))
    assert "locationId" not in seen["req"].headers


def test_request_ids_increase() -> None:
    translator = ProtocolTranslator(URL)
    first = translator.build_envelope("x", {})["id"]
    second = translator.build_envelope("x", {})["id"]
    assert second == first + 1


@pytest.mark.asyncio
async def test_missing_token_raises_auth_error_without_request() -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return rpc_result(request, {})

    translator = make_translator(handler)
    with pytest.raises(AuthError):
        await translator.invoke("contacts_get-contacts", {}, Credentials(token=""))
    assert calls == []


@pytest.mark.asyncio
async def test_event_stream_uses_last_data_line() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        stream = (
            "event: message\n"
            'data: {"jsonrpc": "2.0", "method": "notifications/progress"}\n\n'
            "event: message\n"
            f'data: {json.dumps({"jsonrpc": "2.0", "id": body["id"], "result": {"ok": True}})}\n\n'
        )
        return httpx.Response(200, text=stream, headers={"content-type": "text/event-stream"})

    translator = make_translator(handler)
    assert await translator.invoke("locations_get-location", {}, CREDS) == {"ok": True}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected",
    [
        (400, ValidationError),
        (401, AuthError),
        (403, ScopeError),
        (404, UnknownToolError),
        (429, RateLimitError),
        (500, RemoteInternalError),
        (503, RemoteInternalError),
        (418, ProtocolError),
    ],
)
async def test_http_status_mapping(status: int, expected: type) -> None:
    translator = make_translator(lambda request: httpx.Response(status, json={"message": "nope"}))
    with pytest.raises(expected):
        await translator.invoke("contacts_get-contacts", {}, CREDS)


@pytest.mark.asyncio
async def test_forbidden_names_required_scopes() -> None:
    """A 403 for contacts_get-contacts mentions the View Contacts scope."""
    translator = make_translator(lambda request: httpx.Response(403))
    with pytest.raises(ScopeError) as info:
        await translator.invoke("contacts_get-contacts", {}, CREDS)
    assert "View Contacts" in str(info.value)
    assert info.value.scopes == ["View Contacts"]


@pytest.mark.asyncio
async def test_server_error_carries_remote_message() -> None:
    translator = make_translator(
        lambda request: httpx.Response(502, json={"error": {"code": -1, "message": "upstream down"}})
    )
    with pytest.raises(RemoteInternalError, match="upstream down"):
        await translator.invoke("contacts_get-contacts", {}, CREDS)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, expected",
    [
        (-32601, UnknownToolError),
        (-32602, ValidationError),
        (-32603, RemoteInternalError),
        (-32700, ProtocolError),
        (-32000, RemoteInternalError),
    ],
)
async def test_jsonrpc_error_codes(code: int, expected: type) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": code, "message": "bad"}}
        )

    translator = make_translator(handler)
    with pytest.raises(expected):
        await translator.invoke("contacts_get-contacts", {}, CREDS)


@pytest.mark.asyncio
async def test_non_json_body_is_protocol_error() -> None:
    translator = make_translator(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(ProtocolError):
        await translator.invoke("contacts_get-contacts", {}, CREDS)


@pytest.mark.asyncio
async def test_timeout_maps_to_network_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    translator = make_translator(handler)
    with pytest.raises(NetworkError) as info:
        await translator.invoke("contacts_get-contacts", {}, CREDS)
    assert info.value.reason == "timeout"


@pytest.mark.asyncio
async def test_connection_refused() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    translator = make_translator(handler)
    with pytest.raises(NetworkError) as info:
        await translator.invoke("contacts_get-contacts", {}, CREDS)
    assert info.value.reason == "refused"


@pytest.mark.asyncio
async def test_dns_failure_is_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    translator = make_translator(handler)
    with pytest.raises(NetworkError) as info:
        await translator.invoke("contacts_get-contacts", {}, CREDS)
    assert info.value.reason == "unreachable"
    assert URL in str(info.value)


@pytest.mark.asyncio
async def test_probe_calls_location_tool() -> None:
    names: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        names.append(json.loads(request.content)["params"]["name"])
        return rpc_result(request, {"id": "loc_1"})

    translator = make_translator(handler)
    assert await translator.probe(CREDS) == {"id": "loc_1"}
    assert names == ["locations_get-location"]


@pytest.mark.asyncio
async def test_slow_streamed_body_hits_overall_deadline() -> None:
    """A server that keeps sending keep-alive bytes cannot hold a call past the timeout."""

    async def drip() -> AsyncIterator[bytes]:
        for _ in range(40):
            await asyncio.sleep(0.05)
            yield b": keep-alive\n"
        yield b'data: {"jsonrpc": "2.0", "id": 1, "result": {"ok": true}}\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=drip())

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    translator = ProtocolTranslator(URL, timeout_seconds=0.3, client=client)

    started = time.monotonic()
    with pytest.raises(NetworkError) as info:
        await translator.invoke("contacts_get-contacts", {}, CREDS)
    assert info.value.reason == "timeout"
    assert time.monotonic() - started < 1.5
