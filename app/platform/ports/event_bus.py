from typing import Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Fan-out for tenant-facing message events (message-sent, message-status-update, ...)."""

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None: ...

    async def close(self) -> None: ...
