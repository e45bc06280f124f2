from abc import ABC, abstractmethod

from remindme.helpers.monitoring import start_as_current_span
from remindme.models.readiness import ReadinessEnum


class IKeyValue(ABC):
    """
    Durable string key-value storage, scoped to the current device.
    """

    @abstractmethod
    @start_as_current_span("kv_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("kv_get")
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    @start_as_current_span("kv_set")
    async def set(self, key: str, value: str) -> bool:
        pass

    @abstractmethod
    @start_as_current_span("kv_delete")
    async def delete(self, key: str) -> bool:
        pass
