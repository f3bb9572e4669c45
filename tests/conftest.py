import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest


_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from ghlops.mcp.catalog import default_catalog  # noqa: E402
from ghlops.models import ToolInvocation  # noqa: E402
from ghlops.settings import Settings  # noqa: E402


def llm_message(content: Optional[str] = None, tool_calls: Optional[List[Dict[str, Any]]] = None) -> SimpleNamespace:
    """Build an object shaped like an OpenAI chat completion message.

    ``tool_calls`` items are ``{"name": ..., "arguments": dict | str}``.
    """
    calls = None
    if tool_calls:
        calls = [
            SimpleNamespace(
                id=f"call_{i}",
                type="function",
                function=SimpleNamespace(
                    name=c["name"],
                    arguments=c["arguments"] if isinstance(c["arguments"], str) else json.dumps(c["arguments"]),
                ),
            )
            for i, c in enumerate(tool_calls)
        ]
    return SimpleNamespace(content=content, tool_calls=calls)


def invocation(name: str, **arguments: Any) -> ToolInvocation:
    return ToolInvocation(name=name, arguments=arguments, required_scopes=default_catalog().required_scopes(name))


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        openai_api_key=None,
        ghl_token=None,
        ghl_location_id=None,
        redis_url=None,
        llm_synthesis_enabled=False,
    )


@pytest.fixture
def catalog():
    return default_catalog()
