from typing import Dict, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal durable key-value port used for persisted assistant state."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> bool: ...

    async def remove(self, key: str) -> bool: ...


class InMemoryStore:
    """Process-local store; the default when no Redis URL is configured."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True
