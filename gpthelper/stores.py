"""Store interfaces consumed by the router.

The editor host owns persistence. The router only needs three narrow views:

- ConfigStore: user preferences (provider, per-provider model, maxOutputTokens)
- SecretStore: API keys, async get/store/delete by string key
- StateStore: small persisted values (legacy OpenAI key, model-list cache)

In-memory implementations back the tests and any host that has no store of
its own (values then last for the process lifetime only).
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ConfigStore(Protocol):
    """Read/update access to user configuration."""

    def get(self, key: str, default: Any = None) -> Any: ...

    async def update(self, key: str, value: Any) -> None: ...


@runtime_checkable
class SecretStore(Protocol):
    """Async secret storage keyed by string."""

    async def get(self, key: str) -> str | None: ...

    async def store(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


@runtime_checkable
class StateStore(Protocol):
    """Small persisted key/value state. Updating a key to None removes it."""

    def get(self, key: str) -> Any: ...

    async def update(self, key: str, value: Any) -> None: ...


class DictConfigStore:
    """ConfigStore backed by a plain dict."""

    def __init__(self, values: dict[str, Any] | None = None):
        self.values: dict[str, Any] = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    async def update(self, key: str, value: Any) -> None:
        self.values[key] = value


class InMemorySecretStore:
    """SecretStore that keeps keys in process memory."""

    def __init__(self, secrets: dict[str, str] | None = None):
        self.secrets: dict[str, str] = dict(secrets or {})

    async def get(self, key: str) -> str | None:
        return self.secrets.get(key)

    async def store(self, key: str, value: str) -> None:
        self.secrets[key] = value

    async def delete(self, key: str) -> None:
        self.secrets.pop(key, None)


class InMemoryStateStore:
    """StateStore backed by a plain dict."""

    def __init__(self, values: dict[str, Any] | None = None):
        self.values: dict[str, Any] = dict(values or {})

    def get(self, key: str) -> Any:
        return self.values.get(key)

    async def update(self, key: str, value: Any) -> None:
        if value is None:
            self.values.pop(key, None)
        else:
            self.values[key] = value
