"""Static catalog of the GoHighLevel MCP tools the assistant may call.

`paginated` and `date_fields` drive the dispatcher's parameter defaults. The
`paginated` flags reproduce which tools historically received `limit`/`offset`
defaults (every tool whose name contains ``get-`` or ``search-``), so
``payments_list-transactions`` is deliberately not flagged.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: Dict[str, Any]
    scopes: Tuple[str, ...]
    paginated: bool = False
    date_fields: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def category(self) -> str:
        return self.name.split("_", 1)[0]


def _obj(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _s(description: str = "") -> Dict[str, Any]:
    return {"type": "string", "description": description} if description else {"type": "string"}


def _n(description: str) -> Dict[str, Any]:
    return {"type": "number", "description": description}


def _tags(description: str = "") -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "array", "items": {"type": "string"}}
    if description:
        schema["description"] = description
    return schema


_CONTACT_FIELDS = {
    "firstName": _s("First name"),
    "lastName": _s("Last name"),
    "email": _s("Email address"),
    "phone": _s("Phone number"),
    "tags": _tags("Tags to assign"),
    "customFields": {"type": "object", "description": "Custom field values"},
}

GHL_TOOLS: Tuple[ToolSpec, ...] = (
    # Contacts
    ToolSpec(
        name="contacts_get-contacts",
        description="Get contacts from GHL",
        parameters=_obj(
            {
                "query": _s("Search query for contacts"),
                "limit": _n("Number of results to return (max 100)"),
                "offset": _n("Offset for pagination"),
                "tags": _tags("Filter by tags"),
                "email": _s("Filter by email address"),
                "phone": _s("Filter by phone number"),
            }
        ),
        scopes=("View Contacts",),
        paginated=True,
    ),
    ToolSpec(
        name="contacts_get-contact",
        description="Fetch contact details",
        parameters=_obj({"contactId": _s("Contact ID to fetch")}, ["contactId"]),
        scopes=("View Contacts",),
        paginated=True,
    ),
    ToolSpec(
        name="contacts_create-contact",
        description="Create a contact",
        parameters=_obj(dict(_CONTACT_FIELDS), ["firstName", "email"]),
        scopes=("Edit Contacts",),
    ),
    ToolSpec(
        name="contacts_update-contact",
        description="Update a contact",
        parameters=_obj(
            {
                "contactId": _s("Contact ID to update"),
                "firstName": _s(),
                "lastName": _s(),
                "email": _s(),
                "phone": _s(),
                "tags": _tags(),
                "customFields": {"type": "object"},
            },
            ["contactId"],
        ),
        scopes=("Edit Contacts",),
    ),
    ToolSpec(
        name="contacts_upsert-contact",
        description="Update or create a new contact",
        parameters=_obj(dict(_CONTACT_FIELDS), ["email"]),
        scopes=("Edit Contacts",),
    ),
    ToolSpec(
        name="contacts_add-tags",
        description="Add tags to a contact",
        parameters=_obj({"contactId": _s("Contact ID"), "tags": _tags("Tags to add")}, ["contactId", "tags"]),
        scopes=("Edit Contacts",),
    ),
    ToolSpec(
        name="contacts_remove-tags",
        description="Remove tags from a contact",
        parameters=_obj({"contactId": _s("Contact ID"), "tags": _tags("Tags to remove")}, ["contactId", "tags"]),
        scopes=("Edit Contacts",),
    ),
    ToolSpec(
        name="contacts_get-all-tasks",
        description="Get all tasks for a contact",
        parameters=_obj(
            {
                "contactId": _s("Contact ID"),
                "limit": _n("Number of results"),
                "offset": _n("Pagination offset"),
            },
            ["contactId"],
        ),
        scopes=("View Contacts",),
        paginated=True,
    ),
    # Calendars
    ToolSpec(
        name="calendars_get-calendar-events",
        description="Get calendar events (requires userId, groupId, or calendarId)",
        parameters=_obj(
            {
                "calendarId": _s("Calendar ID"),
                "userId": _s("User ID"),
                "groupId": _s("Group ID"),
                "startDate": _s("Start date (ISO format)"),
                "endDate": _s("End date (ISO format)"),
                "limit": _n("Number of results"),
            }
        ),
        scopes=("View Calendar Events",),
        paginated=True,
        date_fields=("startDate", "endDate"),
    ),
    ToolSpec(
        name="calendars_get-appointment-notes",
        description="Retrieve appointment notes",
        parameters=_obj({"appointmentId": _s("Appointment ID"), "contactId": _s("Contact ID")}),
        scopes=("View Calendars",),
        paginated=True,
    ),
    # Conversations
    ToolSpec(
        name="conversations_search-conversation",
        description="Search/filter/sort conversations",
        parameters=_obj(
            {
                "contactId": _s("Filter by contact ID"),
                "query": _s("Search query"),
                "limit": _n("Number of results"),
                "offset": _n("Pagination offset"),
                "unread": {"type": "boolean", "description": "Filter unread conversations"},
                "sortBy": _s("Sort field"),
                "sortOrder": {"type": "string", "enum": ["asc", "desc"], "description": "Sort order"},
            }
        ),
        scopes=("View Conversations",),
        paginated=True,
    ),
    ToolSpec(
        name="conversations_get-messages",
        description="Get messages by conversation ID",
        parameters=_obj(
            {
                "conversationId": _s("Conversation ID"),
                "limit": _n("Number of messages"),
                "offset": _n("Pagination offset"),
            },
            ["conversationId"],
        ),
        scopes=("View Conversation Messages",),
        paginated=True,
    ),
    ToolSpec(
        name="conversations_send-a-new-message",
        description="Send a message into a conversation thread",
        parameters=_obj(
            {
                "conversationId": _s("Conversation ID"),
                "message": _s("Message content"),
                "type": {"type": "string", "enum": ["SMS", "Email", "WhatsApp"], "description": "Message type"},
                "contactId": _s("Contact ID"),
            },
            ["conversationId", "message"],
        ),
        scopes=("Edit Conversation Messages",),
    ),
    # Opportunities
    ToolSpec(
        name="opportunities_search-opportunity",
        description="Search for opportunities by criteria",
        parameters=_obj(
            {
                "pipelineId": _s("Filter by pipeline ID"),
                "status": _s("Filter by status"),
                "contactId": _s("Filter by contact ID"),
                "query": _s("Search query"),
                "limit": _n("Number of results"),
                "offset": _n("Pagination offset"),
                "monetaryValue": _n("Filter by minimum value"),
            }
        ),
        scopes=("View Opportunities",),
        paginated=True,
    ),
    ToolSpec(
        name="opportunities_get-pipelines",
        description="Retrieve all opportunity pipelines",
        parameters=_obj({"limit": _n("Number of results")}),
        scopes=("View Opportunities",),
        paginated=True,
    ),
    ToolSpec(
        name="opportunities_get-opportunity",
        description="Fetch an opportunity by ID",
        parameters=_obj({"opportunityId": _s("Opportunity ID")}, ["opportunityId"]),
        scopes=("View Opportunities",),
        paginated=True,
    ),
    ToolSpec(
        name="opportunities_update-opportunity",
        description="Update an existing opportunity",
        parameters=_obj(
            {
                "opportunityId": _s("Opportunity ID"),
                "name": _s("Opportunity name"),
                "monetaryValue": _n("Opportunity value"),
                "status": _s("Status"),
                "stageId": _s("Stage ID"),
            },
            ["opportunityId"],
        ),
        scopes=("Edit Opportunities",),
    ),
    # Locations
    ToolSpec(
        name="locations_get-location",
        description="Get sub-account (location) details by ID",
        parameters=_obj({"locationId": _s("Location ID")}),
        scopes=("View Locations",),
        paginated=True,
    ),
    ToolSpec(
        name="locations_get-custom-fields",
        description="Retrieve custom field definitions for a location",
        parameters=_obj(
            {
                "locationId": _s("Location ID"),
                "objectType": _s("Object type (contact, opportunity, etc.)"),
            }
        ),
        scopes=("View Custom Fields",),
        paginated=True,
    ),
    # Payments
    ToolSpec(
        name="payments_get-order-by-id",
        description="Fetch order details by unique order ID",
        parameters=_obj({"orderId": _s("Order ID")}, ["orderId"]),
        scopes=("View Payment Orders",),
        paginated=True,
    ),
    ToolSpec(
        name="payments_list-transactions",
        description="Paginated list, supports filtering",
        parameters=_obj(
            {
                "contactId": _s("Filter by contact ID"),
                "startDate": _s("Start date filter"),
                "endDate": _s("End date filter"),
                "limit": _n("Number of results"),
                "offset": _n("Pagination offset"),
                "status": _s("Transaction status"),
            }
        ),
        scopes=("View Payment Transactions",),
        date_fields=("startDate", "endDate"),
    ),
)

CATEGORIES = ("contacts", "conversations", "opportunities", "calendars", "payments", "locations")


class ToolCatalog:
    """Lookup and presentation helpers over a fixed set of ToolSpec entries."""

    def __init__(self, tools: Iterable[ToolSpec] = GHL_TOOLS) -> None:
        self._tools: Dict[str, ToolSpec] = {t.name: t for t in tools}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self):
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def required_scopes(self, name: str) -> List[str]:
        spec = self._tools.get(name)
        return list(spec.scopes) if spec else []

    def as_openai_tools(self) -> List[Dict[str, Any]]:
        """Return the catalog in OpenAI function-calling format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": spec.name,
                    "description": f"{spec.description} (Required scopes: {', '.join(spec.scopes)})",
                    "parameters": spec.parameters,
                },
            }
            for spec in self._tools.values()
        ]

    def describe_lines(self) -> List[str]:
        return [
            f"{spec.name}: {spec.description} (Required scopes: {', '.join(spec.scopes)})"
            for spec in self._tools.values()
        ]

    def by_category(self) -> Dict[str, List[Dict[str, Any]]]:
        categories: Dict[str, List[Dict[str, Any]]] = {c: [] for c in CATEGORIES}
        for spec in self._tools.values():
            if spec.category in categories:
                categories[spec.category].append(
                    {"name": spec.name, "description": spec.description, "scopes": list(spec.scopes)}
                )
        return categories

    def endpoint_info(self, url: str) -> Dict[str, Any]:
        return {
            "url": url,
            "protocol": "HTTP Streamable",
            "totalTools": len(self._tools),
            "categories": list(CATEGORIES),
            "requiredHeaders": ["Authorization", "locationId (optional)"],
        }


@lru_cache(maxsize=1)
def default_catalog() -> ToolCatalog:
    return ToolCatalog()
