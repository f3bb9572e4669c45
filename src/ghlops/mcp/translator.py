import asyncio
import itertools
import json
import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..errors import (
    AuthError,
    NetworkError,
    ProtocolError,
    RateLimitError,
    RemoteInternalError,
    ScopeError,
    UnknownToolError,
    ValidationError,
)
from ..models import Credentials
from .catalog import ToolCatalog, default_catalog

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
TOOLS_CALL = "tools/call"
PROBE_TOOL = "locations_get-location"

# JSON-RPC error codes returned by the MCP endpoint.
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
PARSE_ERROR = -32700

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "no address associated",
)


class ProtocolTranslator:
    """Turns tool invocations into JSON-RPC calls against the GHL MCP endpoint.

    One instance owns one pooled ``httpx.AsyncClient``; pass ``client`` to
    share or mock the transport.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 30.0,
        catalog: Optional[ToolCatalog] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_seconds
        self._catalog = catalog or default_catalog()
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        self._ids = itertools.count(int(time.time() * 1000))

    @property
    def url(self) -> str:
        return self._url

    async def aclose(self) -> None:
        await self._client.aclose()

    def next_request_id(self) -> int:
        return next(self._ids)

    def build_envelope(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.next_request_id(),
            "method": TOOLS_CALL,
            "params": {"name": tool_name, "arguments": arguments},
        }

    def build_headers(self, credentials: Credentials) -> Dict[str, str]:
        if not credentials.token:
            raise AuthError("GHL token is required")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "Authorization": f"Bearer {credentials.token}",
        }
        if credentials.location_id:
            headers["locationId"] = credentials.location_id
        return headers

    async def invoke(self, tool_name: str, arguments: Dict[str, Any], credentials: Credentials) -> Any:
        """Perform one ``tools/call`` request and return the remote result.

        Raises:
            AssistantError subclass describing the transport or application failure.
        """
        headers = self.build_headers(credentials)
        envelope = self.build_envelope(tool_name, arguments)
        logger.debug(
            "MCP request id=%s tool=%s args=%s location=%s",
            envelope["id"],
            tool_name,
            arguments,
            credentials.location_id or "-",
        )

        try:
            # httpx timeouts are per phase; a body streamed in small chunks needs an overall deadline.
            response = await asyncio.wait_for(
                self._client.post(self._url, json=envelope, headers=headers, timeout=self._timeout),
                self._timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise NetworkError(
                "timeout", "MCP request timeout. The GHL MCP server may be experiencing delays."
            ) from e
        except httpx.ConnectError as e:
            raise self._connect_error(e) from e
        except httpx.TransportError as e:
            raise NetworkError("unreachable", f"MCP network error: {e}") from e

        logger.debug("MCP response id=%s status=%s", envelope["id"], response.status_code)
        return self._handle_response(tool_name, response)

    async def probe(self, credentials: Credentials) -> Any:
        """Lightweight connectivity check against the location endpoint."""
        return await self.invoke(PROBE_TOOL, {}, credentials)

    def _connect_error(self, exc: httpx.ConnectError) -> NetworkError:
        text = str(exc).lower()
        if any(marker in text for marker in _DNS_MARKERS):
            return NetworkError(
                "unreachable",
                f"MCP network error. Cannot reach {self._url}. Please check your connection.",
            )
        return NetworkError("refused", "MCP connection refused. The GHL MCP server may be unavailable.")

    def _handle_response(self, tool_name: str, response: httpx.Response) -> Any:
        status = response.status_code
        if 200 <= status < 300:
            payload = self._decode_payload(response)
            if "result" in payload:
                return payload["result"]
            if payload.get("error"):
                raise self._rpc_error(tool_name, payload["error"])
            return payload

        if status == 401:
            raise AuthError("MCP Authentication failed. Please check your GHL Private Integration Token.")
        if status == 403:
            raise ScopeError(tool_name, self._catalog.required_scopes(tool_name))
        if status == 404:
            raise UnknownToolError(
                f"MCP Resource not found. Tool '{tool_name}' may not exist or parameters are invalid."
            )
        if status == 429:
            raise RateLimitError("MCP Rate limit exceeded. Please wait before making more requests.")
        if status == 400:
            raise ValidationError(f"MCP Bad Request: Invalid parameters for {tool_name}.")
        if status >= 500:
            raise RemoteInternalError(f"GHL MCP Error {status}: {self._remote_message(response)}")
        raise ProtocolError(f"MCP returned unexpected status: {status}")

    def _decode_payload(self, response: httpx.Response) -> Dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        try:
            if "text/event-stream" in content_type:
                payload = self._last_sse_json(response.text)
            else:
                payload = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ProtocolError(f"MCP response is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ProtocolError("MCP response is not a JSON object")
        return payload

    @staticmethod
    def _last_sse_json(text: str) -> Any:
        data_lines = [line[5:].strip() for line in text.splitlines() if line.startswith("data:")]
        for raw in reversed(data_lines):
            if raw:
                return json.loads(raw)
        raise ValueError("event stream carried no data")

    @staticmethod
    def _rpc_error(tool_name: str, error: Dict[str, Any]):
        code = error.get("code")
        message = error.get("message") or "Unknown MCP error"
        if code == METHOD_NOT_FOUND:
            return UnknownToolError(
                f"MCP method not found: {tool_name}. Please check the tool name matches the MCP documentation."
            )
        if code == INVALID_PARAMS:
            return ValidationError(f"Invalid MCP parameters for {tool_name}: {message}")
        if code == INTERNAL_ERROR:
            return RemoteInternalError(f"MCP internal error: {message}")
        if code == PARSE_ERROR:
            return ProtocolError("MCP parse error: Invalid JSON-RPC request")
        return RemoteInternalError(f"MCP Error {code}: {message}")

    @staticmethod
    def _remote_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.reason_phrase or "Unknown MCP error"
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if data.get("message"):
                return str(data["message"])
        return response.reason_phrase or "Unknown MCP error"
