"""Client-side access to the GoHighLevel MCP endpoint."""

from .catalog import ToolCatalog, ToolSpec, default_catalog
from .translator import ProtocolTranslator

__all__ = ["ProtocolTranslator", "ToolCatalog", "ToolSpec", "default_catalog"]
