import asyncio
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import llm_message
from ghlops.agent.llm import ReasoningEngine
from ghlops.agent.orchestrator import MISSING_KEYS_MESSAGE, CommandOrchestrator
from ghlops.errors import AuthError, NetworkError
from ghlops.mcp.translator import ProtocolTranslator
from ghlops.models import Credentials, PerformanceMetrics
from ghlops.services.health import ConnectionStatus
from ghlops.services.state_service import StateService
from ghlops.services.store import InMemoryStore


@pytest.fixture
def translator() -> MagicMock:
    m = MagicMock(spec=ProtocolTranslator)
    m.url = "https://mcp.test/mcp/"
    m.invoke = AsyncMock(return_value={"contacts": [{"id": "c1", "firstName": "Sarah"}]})
    m.probe = AsyncMock(return_value={"id": "loc"})
    m.aclose = AsyncMock()
    return m


@pytest.fixture
def engine() -> MagicMock:
    m = MagicMock(spec=ReasoningEngine)
    m.is_bound = False
    m.complete = AsyncMock(
        return_value=llm_message(tool_calls=[{"name": "contacts_get-contacts", "arguments": {"query": "sarah"}}])
    )
    return m


@pytest.fixture
def state(settings) -> StateService:
    return StateService(InMemoryStore(), settings)


@pytest.fixture
def orchestrator(settings, state, translator, engine, catalog) -> CommandOrchestrator:
    return CommandOrchestrator(settings, state, translator, engine, catalog)


async def configure(state: StateService, **extra: Any) -> None:
    changes: Dict[str, Any] = {"ghlToken": "pit-1", "openaiApiKey": "sk-1", **extra}
    await state.update_config(changes)


@pytest.mark.asyncio
async def test_missing_credentials_short_circuits(orchestrator, translator, engine) -> None:
    """Without keys the command fails immediately and nothing remote is called."""
    reply = await orchestrator.process_command("show contacts")

    assert reply.status == "error"
    assert reply.content == MISSING_KEYS_MESSAGE
    translator.invoke.assert_not_called()
    engine.complete.assert_not_called()
    assert orchestrator.metrics.total_commands == 0
    assert [m.role for m in orchestrator.messages] == ["assistant"]


@pytest.mark.asyncio
async def test_successful_command(orchestrator, state, translator, engine) -> None:
    await configure(state, locationId="loc_9")
    reply = await orchestrator.process_command("find sarah")

    assert reply.status == "success"
    assert reply.metrics.total_actions == 1
    assert reply.metrics.successful_actions == 1
    assert reply.tool_calls[0].name == "contacts_get-contacts"
    assert "## Command Execution Summary" in reply.content

    engine.bind.assert_called_once_with("sk-1")
    translator.invoke.assert_awaited_once_with(
        "contacts_get-contacts",
        {"query": "sarah", "limit": 50, "offset": 0},
        Credentials(token="pit-1", location_id="loc_9"),
    )
    assert orchestrator.metrics.total_commands == 1
    assert orchestrator.metrics.successful_commands == 1
    assert orchestrator.health.status is ConnectionStatus.CONNECTED
    assert orchestrator.memory.user_context.recent_contacts == [{"id": "c1", "firstName": "Sarah"}]
    # user turn, planner turn, report turn
    assert len(orchestrator.memory) == 3
    assert [m.role for m in orchestrator.messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_direct_answer_is_info(orchestrator, state, engine, translator) -> None:
    await configure(state)
    engine.complete.return_value = llm_message(content="I can help with contacts and deals.")
    reply = await orchestrator.process_command("what can you do?")
    assert reply.status == "info"
    assert reply.content == "I can help with contacts and deals."
    translator.invoke.assert_not_called()
    assert orchestrator.metrics.successful_commands == 1


@pytest.mark.asyncio
async def test_second_command_rejected_while_busy(orchestrator, state, engine) -> None:
    await configure(state)
    release = asyncio.Event()

    async def slow_complete(*args: Any, **kwargs: Any) -> Any:
        await release.wait()
        return llm_message(content="done")

    engine.complete.side_effect = slow_complete
    first = asyncio.ensure_future(orchestrator.process_command("first"))
    await asyncio.sleep(0)
    while not orchestrator.is_processing:
        await asyncio.sleep(0)

    memory_before = len(orchestrator.memory)
    messages_before = len(orchestrator.messages)
    assert await orchestrator.process_command("second") is None
    assert len(orchestrator.memory) == memory_before
    assert len(orchestrator.messages) == messages_before
    assert orchestrator.metrics.total_commands == 0

    release.set()
    reply = await first
    assert reply.content == "done"
    assert orchestrator.metrics.total_commands == 1
    assert orchestrator.is_processing is False


@pytest.mark.asyncio
async def test_all_auth_failures_put_connection_in_error(orchestrator, state, translator) -> None:
    await configure(state)
    translator.invoke.side_effect = AuthError("MCP Authentication failed.")
    reply = await orchestrator.process_command("show contacts")

    assert reply.status == "error"
    assert reply.metrics.successful_actions == 0
    assert orchestrator.health.status is ConnectionStatus.ERROR
    assert orchestrator.metrics.successful_commands == 0


@pytest.mark.asyncio
async def test_planner_failure_is_classified(orchestrator, state, engine) -> None:
    await configure(state)
    engine.complete.side_effect = NetworkError("timeout", "LLM request timed out")
    reply = await orchestrator.process_command("show contacts")

    assert reply.status == "error"
    assert reply.content == "Network error. Please check your connection and try again."
    assert reply.error == "LLM request timed out"
    assert orchestrator.health.status is ConnectionStatus.ERROR
    assert orchestrator.metrics.total_commands == 1


@pytest.mark.asyncio
async def test_bad_tool_arguments_fail_whole_command(orchestrator, state, engine, translator) -> None:
    await configure(state)
    engine.complete.return_value = llm_message(tool_calls=[{"name": "contacts_add-tags", "arguments": "{oops"}])
    reply = await orchestrator.process_command("tag")
    assert reply.status == "error"
    assert reply.content.startswith("Error: Invalid tool call format for contacts_add-tags")
    translator.invoke.assert_not_called()


def test_running_average() -> None:
    metrics = PerformanceMetrics()
    metrics.record(100, True)
    metrics.record(300, False)
    assert metrics.average_response_time_ms == 200
    assert metrics.total_commands == 2
    assert metrics.success_rate == 0.5
    assert metrics.last_command_time_ms == 300


@pytest.mark.asyncio
async def test_clear_keeps_metrics(orchestrator, state) -> None:
    await configure(state)
    await orchestrator.process_command("find sarah")
    await orchestrator.clear_messages()

    assert orchestrator.messages == []
    assert len(orchestrator.memory) == 0
    assert orchestrator.metrics.total_commands == 1
    assert await state.load_messages() == []


@pytest.mark.asyncio
async def test_export_then_import_restores_log(orchestrator, state) -> None:
    await configure(state)
    await orchestrator.process_command("find sarah")
    exported = await orchestrator.export_conversation()

    assert exported["performanceMetrics"]["totalCommands"] == 1
    assert exported["config"] == {"hasGhlToken": True, "hasOpenaiKey": True, "locationId": ""}
    assert "pit-1" not in str(exported)

    original = [m.to_dict() for m in orchestrator.messages]
    await orchestrator.clear_messages()
    assert await orchestrator.import_messages(exported) == 2
    assert [m.to_dict() for m in orchestrator.messages] == original


@pytest.mark.asyncio
async def test_load_restores_persisted_messages(settings, state, translator, engine, catalog) -> None:
    await configure(state)
    first = CommandOrchestrator(settings, state, translator, engine, catalog)
    await first.process_command("find sarah")

    second = CommandOrchestrator(settings, state, translator, engine, catalog)
    await second.load()
    assert [m.id for m in second.messages] == [m.id for m in first.messages]


@pytest.mark.asyncio
async def test_connection_test_without_token(orchestrator, translator) -> None:
    assert await orchestrator.test_connection() is False
    assert orchestrator.health.snapshot() == {"status": "disconnected", "error": "No GHL token provided"}
    translator.probe.assert_not_called()


@pytest.mark.asyncio
async def test_connection_test_success_and_failure(orchestrator, state, translator) -> None:
    await configure(state)
    assert await orchestrator.test_connection() is True
    assert orchestrator.health.status is ConnectionStatus.CONNECTED

    translator.probe.side_effect = NetworkError("refused", "MCP connection refused.")
    assert await orchestrator.test_connection() is False
    assert orchestrator.health.snapshot() == {"status": "error", "error": "MCP connection refused."}


@pytest.mark.asyncio
async def test_conversation_summary(orchestrator, state) -> None:
    await configure(state)
    await orchestrator.process_command("find sarah")
    assert orchestrator.conversation_summary() == {
        "totalMessages": 2,
        "userMessages": 1,
        "assistantMessages": 1,
        "successfulCommands": 1,
        "failedCommands": 0,
    }
