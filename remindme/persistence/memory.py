from remindme.helpers.config_models.storage import MemoryModel
from remindme.helpers.logging import logger
from remindme.models.readiness import ReadinessEnum
from remindme.persistence.ikv import IKeyValue


class MemoryKeyValue(IKeyValue):
    """
    A key-value store held in process memory.

    Nothing is evicted, as opposed to a cache. Data is lost when the process exits.
    """

    _config: MemoryModel
    _data: dict[str, str]

    def __init__(self, config: MemoryModel):
        logger.warning(
            "Using memory key-value store, data will be lost on exit, prefer SQLite for persistence"
        )
        self._config = config
        self._data = {}

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def get(self, key: str) -> str | None:
        """
        Get a value from the store.

        If the key does not exist, return `None`.
        """
        return self._data.get(key, None)

    async def set(self, key: str, value: str) -> bool:
        """
        Set a value in the store, replacing the previous one.
        """
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        """
        Delete a value from the store.

        Deleting a missing key is not an error.
        """
        self._data.pop(key, None)
        return True
