import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..errors import PlanningError
from ..mcp.catalog import ToolCatalog
from ..models import HistoryEntry, ToolInvocation, UserContext
from ..services.memory import ConversationMemory
from ..settings import Settings
from .llm import ReasoningEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plan:
    """Planner output: a direct answer, proposed invocations, or both."""

    content: Optional[str]
    tool_calls: List[ToolInvocation] = field(default_factory=list)


def history_to_messages(entries: Sequence[HistoryEntry]) -> List[Dict[str, str]]:
    """Render memory entries as plain chat messages for the prompt window."""
    messages: List[Dict[str, str]] = []
    for entry in entries:
        content = entry.content or ""
        if entry.tool_calls:
            proposed = ", ".join(call.name for call in entry.tool_calls)
            content = f"{content}\n[Proposed actions: {proposed}]".strip()
        if content:
            messages.append({"role": entry.role, "content": content})
    return messages


class CommandPlanner:
    """Asks the reasoning engine which tool calls a command needs."""

    def __init__(
        self,
        engine: ReasoningEngine,
        catalog: ToolCatalog,
        settings: Settings,
    ) -> None:
        self._engine = engine
        self._catalog = catalog
        self._settings = settings

    def build_system_prompt(self, catalog: ToolCatalog, user_context: UserContext) -> str:
        parts: List[str] = [self._settings.agent_system_prompt]
        parts.append("\nUSER CONTEXT:\n" + json.dumps(user_context.to_dict(), default=str))
        parts.append("\nAVAILABLE TOOLS:")
        parts.extend(catalog.describe_lines())
        return "\n".join(parts)

    async def propose(
        self,
        command: str,
        catalog: ToolCatalog,
        history_window: Sequence[HistoryEntry],
        user_context: UserContext,
    ) -> Plan:
        """Ask the engine for a plan; fail fast on unparseable tool arguments.

        Raises:
            PlanningError: a proposed tool call carries arguments that are not a JSON object.
        """
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": self.build_system_prompt(catalog, user_context)}
        ]
        messages.extend(history_to_messages(history_window))
        if not history_window or history_window[-1].role != "user" or history_window[-1].content != command:
            messages.append({"role": "user", "content": command})

        message = await self._engine.complete(
            messages,
            tools=catalog.as_openai_tools(),
            temperature=self._settings.planner_temperature,
            max_tokens=self._settings.planner_max_tokens,
        )

        raw_calls = getattr(message, "tool_calls", None) or []
        tool_calls = [self._parse_call(call, catalog) for call in raw_calls]
        logger.info(
            "Planner proposed %d tool call(s)%s",
            len(tool_calls),
            ": " + ", ".join(c.name for c in tool_calls) if tool_calls else "",
        )
        return Plan(content=getattr(message, "content", None), tool_calls=tool_calls)

    @staticmethod
    def _parse_call(call: Any, catalog: ToolCatalog) -> ToolInvocation:
        name = call.function.name
        raw = call.function.arguments or "{}"
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Error parsing tool call arguments for %s: %s", name, e)
            raise PlanningError(name, str(e)) from e
        if not isinstance(arguments, dict):
            raise PlanningError(name, "arguments must be a JSON object")
        return ToolInvocation(name=name, arguments=arguments, required_scopes=catalog.required_scopes(name))

    async def plan(self, command: str, memory: ConversationMemory) -> Plan:
        """Plan ``command`` using memory's prompt window, recording both turns."""
        memory.append(HistoryEntry(role="user", content=command))
        window = memory.recent_window(self._settings.history_prompt_window)
        plan = await self.propose(command, self._catalog, window, memory.user_context)
        memory.append(
            HistoryEntry(role="assistant", content=plan.content, tool_calls=plan.tool_calls or None)
        )
        return plan
