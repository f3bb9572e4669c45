"""GoHighLevel sandbox MCP server.

Serves a small subset of the GHL tool names over streamable HTTP from JSON seed
data, so the assistant can be pointed at it with GHL_MCP_URL=http://localhost:8001/mcp.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from mcp.server.fastmcp import FastMCP

_DATA_DIR = Path(__file__).resolve().parent / "data"
LOCATION_ID = os.getenv("GHL_SANDBOX_LOCATION_ID", "loc_sandbox")


def _load(name: str) -> list[dict]:
    with open(_DATA_DIR / f"{name}.json", encoding="utf-8") as f:
        return json.load(f)


def _page(items: list[dict], limit: int, offset: int) -> list[dict]:
    offset = max(int(offset), 0)
    return items[offset : offset + max(int(limit), 0)]


def _parse(value: str) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value[:-1] + "+00:00" if value.endswith("Z") else value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _in_range(value: str, start: str, end: str) -> bool:
    moment = _parse(value)
    if moment is None:
        return False
    lower, upper = _parse(start), _parse(end)
    return (lower is None or moment >= lower) and (upper is None or moment <= upper)


mcp = FastMCP(
    "GHL Sandbox",
    host=os.getenv("GHL_SANDBOX_HOST", "127.0.0.1"),
    port=int(os.getenv("GHL_SANDBOX_PORT", "8001")),
    json_response=True,
    stateless_http=True,
)


@mcp.tool(name="contacts_get-contacts")
def get_contacts(query: str = "", email: str = "", tags: list[str] | None = None, limit: int = 50, offset: int = 0) -> str:
    """List contacts, optionally filtered by free-text query, email or tags."""
    contacts = _load("contacts")
    if query:
        q = query.lower()
        contacts = [
            c
            for c in contacts
            if q in f"{c['firstName']} {c['lastName']} {c['email']}".lower()
        ]
    if email:
        contacts = [c for c in contacts if c["email"].lower() == email.lower()]
    if tags:
        wanted = {t.lower() for t in tags}
        contacts = [c for c in contacts if wanted & {t.lower() for t in c.get("tags", [])}]
    page = _page(contacts, limit, offset)
    return json.dumps({"contacts": page, "meta": {"total": len(contacts)}})


@mcp.tool(name="contacts_add-tags")
def add_tags(contactId: str, tags: list[str]) -> str:
    """Add tags to a contact. Changes are not persisted between calls."""
    for contact in _load("contacts"):
        if contact["id"] == contactId:
            merged = list(dict.fromkeys([*contact.get("tags", []), *tags]))
            return json.dumps({"id": contactId, "tags": merged})
    return json.dumps({"error": f"Contact not found: {contactId}"})


@mcp.tool(name="opportunities_search-opportunity")
def search_opportunity(
    status: str = "", contactId: str = "", pipelineId: str = "", limit: int = 50, offset: int = 0
) -> str:
    """Search opportunities by status, contact or pipeline."""
    opportunities = _load("opportunities")
    if status:
        opportunities = [o for o in opportunities if o["status"] == status.lower()]
    if contactId:
        opportunities = [o for o in opportunities if o["contactId"] == contactId]
    if pipelineId:
        opportunities = [o for o in opportunities if o["pipelineId"] == pipelineId]
    return json.dumps({"opportunities": _page(opportunities, limit, offset)})


@mcp.tool(name="calendars_get-calendar-events")
def get_calendar_events(
    calendarId: str = "", startDate: str = "", endDate: str = "", limit: int = 50, offset: int = 0
) -> str:
    """List calendar events, optionally within a startDate/endDate window."""
    events = _load("events")
    if calendarId:
        events = [e for e in events if e["calendarId"] == calendarId]
    if startDate or endDate:
        events = [e for e in events if _in_range(e["startTime"], startDate, endDate)]
    return json.dumps({"events": _page(events, limit, offset)})


@mcp.tool(name="payments_list-transactions")
def list_transactions(
    contactId: str = "", status: str = "", startDate: str = "", endDate: str = "", limit: int = 50, offset: int = 0
) -> str:
    """List payment transactions with optional contact, status and date filters."""
    transactions = _load("transactions")
    if contactId:
        transactions = [t for t in transactions if t["contactId"] == contactId]
    if status:
        transactions = [t for t in transactions if t["status"] == status.lower()]
    if startDate or endDate:
        transactions = [t for t in transactions if _in_range(t["createdAt"], startDate, endDate)]
    return json.dumps({"transactions": _page(transactions, limit, offset)})


@mcp.tool(name="locations_get-location")
def get_location(locationId: str = "", limit: int = 50, offset: int = 0) -> str:
    """Get the sandbox sub-account."""
    return json.dumps(
        {
            "id": locationId or LOCATION_ID,
            "name": "Sandbox Agency",
            "timezone": "UTC",
        }
    )


if __name__ == "__main__":
    mcp.run(transport="streamable-http")
