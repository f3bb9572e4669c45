import logging
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncOpenAI

from ..settings import Settings

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Any]


class ReasoningEngine:
    """Chat-completions client bound to the API key of the current command.

    The underlying ``AsyncOpenAI`` client is rebuilt only when the key changes.
    """

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None) -> None:
        self._settings = settings
        self._client_factory = client_factory or self._make_client
        self._client: Any = None
        self._api_key: Optional[str] = None

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self._settings.openai_base_url,
            timeout=self._settings.llm_request_timeout_seconds,
        )

    @property
    def is_bound(self) -> bool:
        return self._client is not None

    def bind(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is required")
        if self._client is not None and self._api_key == api_key:
            return
        self._client = self._client_factory(api_key)
        self._api_key = api_key
        logger.debug("Reasoning engine client initialised")

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float,
        max_tokens: int,
    ) -> Any:
        """Run one chat completion and return the first choice's message."""
        if self._client is None:
            raise RuntimeError("Reasoning engine is not bound to an API key")
        kwargs: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        response = await self._client.chat.completions.create(**kwargs)
        return response.choices[0].message
