"""Turns tool outcomes into a business report.

Results are matched against a fixed, ordered set of entity extractors. The
deterministic renderer is used whenever the reasoning engine is disabled,
unbound, fails, or returns nothing.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..models import ToolOutcome
from ..services.memory import ConversationMemory
from ..settings import Settings
from .llm import ReasoningEngine

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=7)


@dataclass(frozen=True)
class Report:
    content: str
    success: bool


def parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_money(value: float) -> str:
    if float(value).is_integer():
        return f"${int(value):,}"
    return f"${value:,.2f}"


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def unwrap_result(result: Any) -> Any:
    """See through MCP ``tools/call`` envelopes to the business payload."""
    if not isinstance(result, dict):
        return result
    structured = result.get("structuredContent")
    if isinstance(structured, dict):
        return structured
    content = result.get("content")
    if isinstance(content, list) and len(content) == 1 and isinstance(content[0], dict):
        text = content[0].get("text")
        if isinstance(text, str):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                return result
            if isinstance(parsed, dict):
                return parsed
    return result


@dataclass(frozen=True)
class EntityExtractor:
    """Recognizes one entity collection by the list stored under ``field``."""

    name: str
    field: str
    summarize: Callable[[str, List[Dict[str, Any]], datetime], str]

    def match(self, payload: Any) -> Optional[List[Dict[str, Any]]]:
        if isinstance(payload, dict) and isinstance(payload.get(self.field), list):
            return [item for item in payload[self.field] if isinstance(item, dict)]
        return None


def _contacts_line(tool: str, items: List[Dict[str, Any]], now: datetime) -> str:
    line = f"✅ Found {len(items)} contacts"
    recent = _count_recent(items, "dateAdded", now)
    if recent:
        line += f" ({recent} added this week)"
    return line


def _opportunities_line(tool: str, items: List[Dict[str, Any]], now: datetime) -> str:
    total = sum(_number(o.get("monetaryValue")) for o in items)
    line = f"✅ Found {len(items)} opportunities"
    if total > 0:
        line += f" (Total value: {format_money(total)})"
    return line


def _events_line(tool: str, items: List[Dict[str, Any]], now: datetime) -> str:
    today = _count_today(items, now)
    line = f"✅ Found {len(items)} events"
    if today:
        line += f" ({today} today)"
    return line


def _transactions_line(tool: str, items: List[Dict[str, Any]], now: datetime) -> str:
    total = sum(_number(t.get("amount")) for t in items)
    line = f"✅ Found {len(items)} transactions"
    if total > 0:
        line += f" (Total: {format_money(total)})"
    return line


def _conversations_line(tool: str, items: List[Dict[str, Any]], now: datetime) -> str:
    unread = sum(1 for c in items if _number(c.get("unreadCount")) > 0)
    line = f"✅ Found {len(items)} conversations"
    if unread:
        line += f" ({unread} unread)"
    return line


def _count_recent(items: Sequence[Dict[str, Any]], key: str, now: datetime) -> int:
    cutoff = now - RECENT_WINDOW
    return sum(1 for item in items if (dt := parse_datetime(item.get(key))) is not None and dt > cutoff)


def _count_today(items: Sequence[Dict[str, Any]], now: datetime) -> int:
    return sum(
        1
        for item in items
        if (dt := parse_datetime(item.get("startTime"))) is not None and dt.date() == now.date()
    )


EXTRACTORS: tuple[EntityExtractor, ...] = (
    EntityExtractor("contacts", "contacts", _contacts_line),
    EntityExtractor("opportunities", "opportunities", _opportunities_line),
    EntityExtractor("events", "events", _events_line),
    EntityExtractor("transactions", "transactions", _transactions_line),
    EntityExtractor("conversations", "conversations", _conversations_line),
)


def first_match(payload: Any) -> Optional[tuple[EntityExtractor, List[Dict[str, Any]]]]:
    for extractor in EXTRACTORS:
        items = extractor.match(payload)
        if items is not None:
            return extractor, items
    return None


def extract_business_data(outcomes: Sequence[ToolOutcome]) -> Dict[str, List[Dict[str, Any]]]:
    """Collect every recognized entity collection; later outcomes win per type."""
    data: Dict[str, List[Dict[str, Any]]] = {}
    for outcome in outcomes:
        if not outcome.success or outcome.result is None:
            continue
        payload = unwrap_result(outcome.result)
        for extractor in EXTRACTORS:
            items = extractor.match(payload)
            if items is not None:
                data[extractor.name] = items
    return data


def business_insights(data: Dict[str, List[Dict[str, Any]]], now: Optional[datetime] = None) -> List[str]:
    now = now or datetime.now(timezone.utc)
    insights: List[str] = []

    contacts = data.get("contacts")
    if contacts is not None:
        tagged = sum(1 for c in contacts if c.get("tags"))
        recent = _count_recent(contacts, "dateAdded", now)
        insights.append(
            f"📊 Contact Analysis: {len(contacts)} total, {recent} added this week, {tagged} tagged"
        )

    opportunities = data.get("opportunities")
    if opportunities is not None:
        total = sum(_number(o.get("monetaryValue")) for o in opportunities)
        stages: Dict[str, int] = {}
        for opp in opportunities:
            stage = str(opp.get("status") or "unknown")
            stages[stage] = stages.get(stage, 0) + 1
        distribution = ", ".join(f"{count} in {stage}" for stage, count in stages.items())
        line = f"💰 Pipeline Analysis: {format_money(total)} total value"
        insights.append(f"{line}, {distribution}" if distribution else line)

    events = data.get("events")
    if events is not None:
        insights.append(f"📅 Calendar: {len(events)} events, {_count_today(events, now)} today")

    transactions = data.get("transactions")
    if transactions is not None:
        total = sum(_number(t.get("amount")) for t in transactions)
        insights.append(f"💳 Payments: {len(transactions)} transactions totalling {format_money(total)}")

    conversations = data.get("conversations")
    if conversations is not None:
        unread = sum(1 for c in conversations if _number(c.get("unreadCount")) > 0)
        insights.append(f"💬 Conversations: {len(conversations)} found, {unread} with unread messages")

    return insights


def format_outcome(outcome: ToolOutcome, now: Optional[datetime] = None) -> str:
    """One-line summary of a single outcome."""
    if not outcome.success:
        return f"❌ {outcome.name}: {outcome.error}"
    now = now or datetime.now(timezone.utc)
    payload = unwrap_result(outcome.result)
    if isinstance(payload, dict):
        matched = first_match(payload)
        if matched is not None:
            extractor, items = matched
            return extractor.summarize(outcome.name, items, now)
        if payload.get("id"):
            return f"✅ {outcome.name}: Operation completed successfully (ID: {payload['id']})"
        return f"✅ {outcome.name}: Operation completed successfully"
    if payload is None:
        return f"✅ {outcome.name}: Operation completed successfully"
    return f"✅ {outcome.name}: {str(payload)[:100]}"


NEXT_STEPS: Dict[str, tuple[str, ...]] = {
    "contacts": (
        "Review and tag new contacts for better organization",
        "Set up follow-up sequences for recent leads",
    ),
    "opportunities": (
        "Update opportunity stages based on recent activities",
        "Schedule follow-up calls for high-value prospects",
    ),
    "events": ("Confirm today's appointments with attendees",),
    "transactions": ("Reconcile recent transactions against open orders",),
    "conversations": ("Reply to unread conversations",),
}


def render_fallback(outcomes: Sequence[ToolOutcome], now: Optional[datetime] = None) -> str:
    """Deterministic markdown report used when the reasoning engine is not used."""
    now = now or datetime.now(timezone.utc)
    successful = sum(1 for o in outcomes if o.success)
    failed = len(outcomes) - successful

    lines: List[str] = ["## Command Execution Summary", ""]
    lines.append(f"✅ **{successful} action(s) completed successfully**")
    if failed:
        lines.append(f"❌ **{failed} action(s) failed**")
    lines.append("")

    data = extract_business_data(outcomes)
    insights = business_insights(data, now)
    if insights:
        lines.extend(["## Business Insights", ""])
        lines.extend(insights)
        lines.append("")

    lines.extend(["## Action Details", ""])
    lines.extend(format_outcome(o, now) for o in outcomes)

    steps = [step for name, items in data.items() if items for step in NEXT_STEPS.get(name, ())]
    if steps:
        lines.extend(["", "## Suggested Next Steps", ""])
        lines.extend(f"• {step}" for step in steps)
    return "\n".join(lines) + "\n"


class ResponseSynthesizer:
    """Builds the final assistant report for one command."""

    def __init__(self, engine: ReasoningEngine, settings: Settings) -> None:
        self._engine = engine
        self._settings = settings

    def build_prompt(
        self,
        command: str,
        outcomes: Sequence[ToolOutcome],
        insights: Sequence[str],
        memory: ConversationMemory,
    ) -> str:
        context = memory.user_context
        return (
            f'BUSINESS COMMAND: "{command}"\n\n'
            "EXECUTED ACTIONS:\n"
            + "\n".join(format_outcome(o) for o in outcomes)
            + "\n\nBUSINESS INSIGHTS:\n"
            + "\n".join(insights)
            + "\n\nCONTEXT:\n"
            f"- Recent contacts: {len(context.recent_contacts)}\n"
            f"- Active opportunities: {len(context.active_opportunities)}\n\n"
            "INSTRUCTIONS:\n"
            "Provide a business-focused response that includes:\n"
            "1. Clear summary of what was accomplished\n"
            "2. Key business insights and metrics\n"
            "3. Actionable next steps or recommendations\n"
            "4. Any important patterns or opportunities identified\n\n"
            "Format the response with clear sections and bullet points. "
            "Keep it concise but valuable."
        )

    async def synthesize(
        self, command: str, outcomes: Sequence[ToolOutcome], memory: ConversationMemory
    ) -> Report:
        success = any(o.success for o in outcomes)
        data = extract_business_data(outcomes)
        insights = business_insights(data)

        limit = self._settings.user_context_entity_limit
        if "contacts" in data:
            memory.update_user_context("recent_contacts", data["contacts"][:limit])
        if "opportunities" in data:
            memory.update_user_context("active_opportunities", data["opportunities"][:limit])

        if self._settings.llm_synthesis_enabled and self._engine.is_bound:
            try:
                message = await self._engine.complete(
                    [{"role": "user", "content": self.build_prompt(command, outcomes, insights, memory)}],
                    temperature=self._settings.synthesis_temperature,
                    max_tokens=self._settings.synthesis_max_tokens,
                )
                content = (getattr(message, "content", None) or "").strip()
                if content:
                    return Report(content=content, success=success)
                logger.warning("Reasoning engine returned an empty report; using fallback")
            except Exception as e:
                logger.warning("Error generating report with reasoning engine, using fallback: %s", e)

        return Report(content=render_fallback(outcomes), success=success)
