import json
import logging
from typing import Any, Dict, List, Sequence

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..models import Message, PerformanceMetrics, RuntimeConfig, utc_now_iso
from ..settings import Settings
from .redis import RedisStore, get_redis_store
from .store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)


class InvalidExportError(ValueError):
    pass


def messages_from_document(document: Any) -> List[Message]:
    """Read a message log from an export document or a bare list of messages."""
    raw = document.get("messages") if isinstance(document, dict) else document
    if not isinstance(raw, list):
        raise InvalidExportError("Expected a list of messages or an export document with 'messages'")
    try:
        return [Message.from_dict(item) for item in raw]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise InvalidExportError(f"Invalid message in document: {e}") from e


class StateService:
    """Persists the message log and runtime configuration under two keys."""

    def __init__(self, store: KeyValueStore, settings: Settings) -> None:
        self._store = store
        self._messages_key = settings.messages_storage_key
        self._config_key = settings.config_storage_key
        self._config_defaults = RuntimeConfig(
            ghl_token=settings.ghl_token or "",
            location_id=settings.ghl_location_id or "",
            openai_api_key=settings.openai_api_key or "",
        )

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def load_messages(self) -> List[Message]:
        """Load the persisted message log. Missing or corrupt data yields []."""
        raw = await self._store.get(self._messages_key)
        if raw is None:
            return []
        try:
            return messages_from_document(json.loads(raw))
        except (json.JSONDecodeError, InvalidExportError) as e:
            logger.warning("Failed to load saved messages: %s", e)
            return []

    async def save_messages(self, messages: Sequence[Message]) -> bool:
        try:
            payload = json.dumps([m.to_dict() for m in messages], default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Message log serialization failed: %s", e)
            return False
        return await self._store.set(self._messages_key, payload)

    async def clear_messages(self) -> bool:
        return await self._store.remove(self._messages_key)

    async def load_config(self) -> RuntimeConfig:
        """Load runtime config; absent keys fall back to environment defaults."""
        raw = await self._store.get(self._config_key)
        if raw is None:
            return RuntimeConfig.from_dict({}, self._config_defaults)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Invalid saved config, using defaults: %s", e)
            return RuntimeConfig.from_dict({}, self._config_defaults)
        if not isinstance(data, dict):
            return RuntimeConfig.from_dict({}, self._config_defaults)
        return RuntimeConfig.from_dict(data, self._config_defaults)

    async def save_config(self, config: RuntimeConfig) -> bool:
        return await self._store.set(self._config_key, json.dumps(config.to_dict()))

    async def update_config(self, changes: Dict[str, Any]) -> RuntimeConfig:
        current = await self.load_config()
        updated = RuntimeConfig.from_dict({**current.to_dict(), **changes}, current)
        await self.save_config(updated)
        return updated

    async def clear_config(self) -> RuntimeConfig:
        await self._store.remove(self._config_key)
        return RuntimeConfig.from_dict({}, self._config_defaults)

    @staticmethod
    def build_export(
        messages: Sequence[Message], metrics: PerformanceMetrics, config: RuntimeConfig
    ) -> Dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in messages],
            "performanceMetrics": metrics.to_dict(),
            "exportDate": utc_now_iso(),
            "config": config.redacted(),
        }


async def build_state_service(settings: Settings) -> StateService:
    """Use Redis when configured and reachable; otherwise an in-process store."""
    redis_store = get_redis_store(settings)
    if redis_store is not None:
        try:
            await redis_store.connect()
            return StateService(redis_store, settings)
        except (RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError) as e:
            logger.warning("State store unavailable (Redis), falling back to memory: %s", e)
    return StateService(InMemoryStore(), settings)


async def close_state_service(service: StateService) -> None:
    if isinstance(service.store, RedisStore):
        await service.store.close()
