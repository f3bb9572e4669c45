import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from ..errors import AuthError, NetworkError, RateLimitError, classify_error
from ..mcp.catalog import ToolCatalog, default_catalog
from ..mcp.translator import ProtocolTranslator
from ..models import (
    Credentials,
    HistoryEntry,
    Message,
    MessageMetrics,
    PerformanceMetrics,
    RuntimeConfig,
    ToolOutcome,
)
from ..services.health import ConnectionMonitor
from ..services.memory import ConversationMemory
from ..services.state_service import StateService, messages_from_document
from ..settings import Settings
from .dispatcher import ToolDispatcher
from .llm import ReasoningEngine
from .planner import CommandPlanner
from .synthesizer import ResponseSynthesizer

logger = logging.getLogger(__name__)

MISSING_KEYS_MESSAGE = "Please configure your API keys in Settings first."
NO_ACTION_MESSAGE = "I understand your request, but I need more specific information to help you."

_USER_FACING = {
    AuthError.kind: "Authentication failed. Please check your API credentials in Settings.",
    RateLimitError.kind: "Rate limit exceeded. Please wait a moment and try again.",
    NetworkError.kind: "Network error. Please check your connection and try again.",
}

# Failure kinds that say something about the connection rather than the request.
_CONNECTION_KINDS = frozenset({AuthError.kind, NetworkError.kind})


def user_facing_error(exc: BaseException) -> str:
    kind = classify_error(exc)
    return _USER_FACING.get(kind, f"Error: {exc}")


class CommandOrchestrator:
    """Runs one natural-language command at a time through plan, dispatch and synthesis.

    Owns the message log, conversation memory, performance metrics and the
    connection monitor for its lifetime. All collaborators are injected.
    """

    def __init__(
        self,
        settings: Settings,
        state: StateService,
        translator: ProtocolTranslator,
        engine: ReasoningEngine,
        catalog: Optional[ToolCatalog] = None,
    ) -> None:
        self._settings = settings
        self._state = state
        self._translator = translator
        self._engine = engine
        self._catalog = catalog or default_catalog()

        self.memory = ConversationMemory(max_entries=settings.history_max_entries)
        self.metrics = PerformanceMetrics()
        self.health = ConnectionMonitor()
        self.planner = CommandPlanner(engine, self._catalog, settings)
        self.dispatcher = ToolDispatcher(translator, self._catalog)
        self.synthesizer = ResponseSynthesizer(engine, settings)

        self._messages: List[Message] = []
        self._busy = False

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def state(self) -> StateService:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._busy

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    async def aclose(self) -> None:
        await self._translator.aclose()

    async def load(self) -> None:
        """Restore the persisted message log."""
        self._messages = await self._state.load_messages()
        logger.info("Loaded %d saved message(s)", len(self._messages))

    async def _add_message(self, message: Message) -> Message:
        self._messages.append(message)
        await self._state.save_messages(self._messages)
        return message

    async def process_command(self, command: str) -> Optional[Message]:
        """Process one command and return the final assistant message.

        Returns None without touching any state when a command is already in flight.
        """
        if self._busy:
            logger.info("Command rejected: another command is still processing")
            return None

        self._busy = True
        started = time.perf_counter()
        try:
            config = await self._state.load_config()
            if not config.is_configured:
                logger.warning("Command refused: GHL token or OpenAI key missing")
                return await self._add_message(
                    Message(role="assistant", content=MISSING_KEYS_MESSAGE, status="error")
                )
            reply, success = await self._run(command, config, started)
        finally:
            self._busy = False

        self.metrics.record((time.perf_counter() - started) * 1000, success)
        return reply

    async def _run(self, command: str, config: RuntimeConfig, started: float) -> tuple[Message, bool]:
        await self._add_message(Message(role="user", content=command))
        logger.info("Processing command: %s", command[:200])

        try:
            self.health.begin()
            self._engine.bind(config.openai_api_key)
            plan = await self.planner.plan(command, self.memory)

            if not plan.tool_calls:
                self._mark_connected()
                reply = await self._add_message(
                    Message(role="assistant", content=plan.content or NO_ACTION_MESSAGE, status="info")
                )
                return reply, True

            credentials = Credentials(token=config.ghl_token, location_id=config.location_id or None)
            outcomes = await self.dispatcher.dispatch(plan.tool_calls, credentials)
            report = await self.synthesizer.synthesize(command, outcomes, self.memory)
            self.memory.append(HistoryEntry(role="assistant", content=report.content))
            self._settle_health(outcomes)

            successful = sum(1 for o in outcomes if o.success)
            reply = await self._add_message(
                Message(
                    role="assistant",
                    content=report.content,
                    status="success" if report.success else "error",
                    tool_calls=outcomes,
                    metrics=MessageMetrics(
                        total_actions=len(outcomes),
                        successful_actions=successful,
                        execution_time_ms=(time.perf_counter() - started) * 1000,
                    ),
                )
            )
            return reply, report.success

        except Exception as e:
            logger.exception("Command processing error: %s", e)
            self._fail_health(str(e))
            reply = await self._add_message(
                Message(role="assistant", content=user_facing_error(e), status="error", error=str(e))
            )
            return reply, False

    def _settle_health(self, outcomes: Sequence[ToolOutcome]) -> None:
        failures = [o for o in outcomes if not o.success]
        if outcomes and len(failures) == len(outcomes) and all(
            o.error_kind in _CONNECTION_KINDS for o in failures
        ):
            self._fail_health(failures[0].error or "All tool calls failed")
        else:
            self._mark_connected()

    def _mark_connected(self) -> None:
        self.health.begin()
        self.health.succeed()

    def _fail_health(self, reason: str) -> None:
        self.health.begin()
        self.health.fail(reason)

    async def test_connection(self) -> bool:
        """Probe the business-system endpoint with the current credentials."""
        config = await self._state.load_config()
        if not config.ghl_token:
            self.health.disconnect("No GHL token provided")
            return False

        self.health.begin()
        logger.info(
            "Testing connection to %s (location id set: %s)",
            self._translator.url,
            bool(config.location_id),
        )
        try:
            await self._translator.probe(
                Credentials(token=config.ghl_token, location_id=config.location_id or None)
            )
        except Exception as e:
            logger.error("Connection test failed: %s", e)
            self._fail_health(str(e))
            return False
        self._mark_connected()
        return True

    async def clear_messages(self) -> None:
        """Empty the message log and conversation memory; metrics are kept."""
        self._messages = []
        await self._state.clear_messages()
        self.memory.clear()

    async def export_conversation(self) -> Dict[str, Any]:
        config = await self._state.load_config()
        return self._state.build_export(self._messages, self.metrics, config)

    async def import_messages(self, document: Any) -> int:
        """Replace the message log from an export document or message list."""
        messages = messages_from_document(document)
        self._messages = messages
        await self._state.save_messages(self._messages)
        logger.info("Imported %d message(s)", len(messages))
        return len(messages)

    async def update_config(self, changes: Dict[str, Any]) -> RuntimeConfig:
        return await self._state.update_config(changes)

    async def clear_config(self) -> RuntimeConfig:
        config = await self._state.clear_config()
        self.health.disconnect()
        return config

    def conversation_summary(self) -> Dict[str, int]:
        return {
            "totalMessages": len(self._messages),
            "userMessages": sum(1 for m in self._messages if m.role == "user"),
            "assistantMessages": sum(1 for m in self._messages if m.role == "assistant"),
            "successfulCommands": sum(1 for m in self._messages if m.status == "success"),
            "failedCommands": sum(1 for m in self._messages if m.status == "error"),
        }


async def build_orchestrator(settings: Settings, state: StateService) -> CommandOrchestrator:
    """Construct an orchestrator with production collaborators and restore its log."""
    catalog = default_catalog()
    translator = ProtocolTranslator(
        settings.ghl_mcp_url,
        timeout_seconds=settings.tool_request_timeout_seconds,
        catalog=catalog,
    )
    orchestrator = CommandOrchestrator(
        settings=settings,
        state=state,
        translator=translator,
        engine=ReasoningEngine(settings),
        catalog=catalog,
    )
    await orchestrator.load()
    return orchestrator
