import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from ..errors import AssistantError, UnknownToolError, ValidationError
from ..mcp.catalog import ToolCatalog, ToolSpec
from ..mcp.translator import ProtocolTranslator
from ..models import Credentials, ToolInvocation, ToolOutcome

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
DEFAULT_OFFSET = 0


def to_iso8601(value: Any) -> str:
    """Normalize a date-like value to UTC ISO-8601 with milliseconds and ``Z``.

    Numbers are epoch milliseconds; naive datetimes are taken as UTC.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a date: {value!r}")
    if isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not a date: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def enhance_arguments(spec: ToolSpec, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Apply catalog-driven defaults to a copy of ``arguments``."""
    enhanced = dict(arguments)
    if spec.paginated:
        if enhanced.get("limit") is None:
            enhanced["limit"] = DEFAULT_LIMIT
        if enhanced.get("offset") is None:
            enhanced["offset"] = DEFAULT_OFFSET
    for field_name in spec.date_fields:
        if enhanced.get(field_name) is None:
            continue
        try:
            enhanced[field_name] = to_iso8601(enhanced[field_name])
        except ValueError as e:
            raise ValidationError(f"Invalid date for {spec.name}.{field_name}: {e}") from e
    return enhanced


class ToolDispatcher:
    """Runs tool invocations concurrently; one failure never affects siblings."""

    def __init__(self, translator: ProtocolTranslator, catalog: ToolCatalog) -> None:
        self._translator = translator
        self._catalog = catalog

    async def dispatch(
        self, invocations: Sequence[ToolInvocation], credentials: Credentials
    ) -> List[ToolOutcome]:
        """Execute all invocations and return outcomes in submission order.

        Never raises for per-invocation failures; they become failed outcomes.
        """
        if not invocations:
            return []

        logger.info("Dispatching %d tool call(s): %s", len(invocations), ", ".join(i.name for i in invocations))
        tasks = [
            asyncio.ensure_future(self._run_one(index, invocation, credentials))
            for index, invocation in enumerate(invocations)
        ]
        settled = await asyncio.gather(*tasks)

        outcomes: List[ToolOutcome | None] = [None] * len(invocations)
        for index, outcome in settled:
            outcomes[index] = outcome
        succeeded = sum(1 for o in outcomes if o is not None and o.success)
        logger.info("Dispatch finished: %d/%d succeeded", succeeded, len(outcomes))
        return [o for o in outcomes if o is not None]

    async def _run_one(
        self, index: int, invocation: ToolInvocation, credentials: Credentials
    ) -> tuple[int, ToolOutcome]:
        started = time.perf_counter()
        try:
            result = await self._execute(invocation, credentials)
        except AssistantError as e:
            logger.warning("Tool %s failed (%s): %s", invocation.name, e.kind, e)
            return index, ToolOutcome.failed(invocation, str(e), e.kind, _elapsed_ms(started))
        except Exception as e:
            logger.exception("Unexpected error executing %s", invocation.name)
            return index, ToolOutcome.failed(invocation, str(e) or type(e).__name__, "internal", _elapsed_ms(started))
        logger.debug("Tool %s completed", invocation.name)
        return index, ToolOutcome.succeeded(invocation, result, _elapsed_ms(started))

    async def _execute(self, invocation: ToolInvocation, credentials: Credentials) -> Any:
        spec = self._catalog.get(invocation.name)
        if spec is None:
            raise UnknownToolError(
                f"Unknown MCP tool: {invocation.name}. Available tools: {', '.join(self._catalog.names())}"
            )
        arguments = enhance_arguments(spec, invocation.arguments)
        return await self._translator.invoke(invocation.name, arguments, credentials)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
