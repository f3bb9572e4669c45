import importlib.util
import json
from importlib.metadata import version
from pathlib import Path

import pytest

_SERVER = Path(__file__).resolve().parents[1] / "mcp_servers" / "ghl_sandbox" / "server.py"


@pytest.fixture(scope="module")
def sandbox():
    spec = importlib.util.spec_from_file_location("ghl_sandbox_server", _SERVER)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.asyncio
async def test_registered_tools_are_catalog_names(sandbox, catalog) -> None:
    tools = await sandbox.mcp.list_tools()
    names = {t.name for t in tools}
    assert "contacts_get-contacts" in names
    assert names <= set(catalog.names())


def test_contacts_filter_and_paging(sandbox) -> None:
    vip = json.loads(sandbox.get_contacts(tags=["vip"]))
    assert {c["id"] for c in vip["contacts"]} == {"c_1001", "c_1004"}

    page = json.loads(sandbox.get_contacts(limit=2, offset=1))
    assert [c["id"] for c in page["contacts"]] == ["c_1002", "c_1003"]
    assert page["meta"]["total"] == 4


def test_calendar_events_date_window(sandbox) -> None:
    events = json.loads(
        sandbox.get_calendar_events(startDate="2025-02-04T00:00:00.000Z", endDate="2025-02-05T00:00:00.000Z")
    )
    assert [e["id"] for e in events["events"]] == ["e_3002"]


def test_add_tags_merges(sandbox) -> None:
    result = json.loads(sandbox.add_tags(contactId="c_1002", tags=["Hot Lead", "Follow Up"]))
    assert result == {"id": "c_1002", "tags": ["Hot Lead", "Follow Up"]}
    assert "error" in json.loads(sandbox.add_tags(contactId="missing", tags=["x"]))


def test_opportunity_and_transaction_filters(sandbox) -> None:
    open_deals = json.loads(sandbox.search_opportunity(status="open"))
    assert {o["id"] for o in open_deals["opportunities"]} == {"o_2001", "o_2003"}

    succeeded = json.loads(sandbox.list_transactions(status="succeeded"))
    assert sum(t["amount"] for t in succeeded["transactions"]) == 4200.5


def test_installed_mcp_provides_fastmcp() -> None:
    """The sandbox is written against the 1.x FastMCP server API."""
    assert int(version("mcp").split(".")[0]) == 1
    assert importlib.util.find_spec("mcp.server.fastmcp") is not None
