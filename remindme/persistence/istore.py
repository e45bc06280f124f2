from abc import ABC, abstractmethod
from collections.abc import Callable

from remindme.models.readiness import ReadinessEnum
from remindme.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
    ReminderUpdateModel,
)
from remindme.models.result import ResultModel
from remindme.models.user import AuthEventEnum, AuthModel, SessionModel, UserModel

AuthCallback = Callable[[AuthEventEnum, SessionModel | None], None]


class Subscription:
    """
    Handle on an auth state listener.
    """

    _active: bool
    _unsubscribe: Callable[[], None]

    def __init__(self, unsubscribe: Callable[[], None]):
        self._active = True
        self._unsubscribe = unsubscribe

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """
        Stop receiving events. Calling it twice is a no-op.
        """
        if not self._active:
            return
        self._active = False
        self._unsubscribe()


class ITable(ABC):
    """
    Table-style access to reminders, for callers written against rows.

    Only the operations the application needs are available, it is not a query builder.
    """

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> ResultModel[list[ReminderModel]]:
        pass

    @abstractmethod
    async def insert(
        self,
        reminder: ReminderCreateModel,
    ) -> ResultModel[ReminderModel]:
        pass

    @abstractmethod
    async def update_by_id(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ResultModel[ReminderModel]:
        pass

    @abstractmethod
    async def delete_by_id(self, reminder_id: str) -> ResultModel[str]:
        pass


class IStore(ABC):
    """
    Contract shared by every storage backend, and by the adapter in front of them.

    Expected failures are returned in the envelope, only programming errors are raised.
    """

    @property
    @abstractmethod
    def table_name(self) -> str:
        pass

    @abstractmethod
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    async def get_current_user(self) -> UserModel | None:
        pass

    @abstractmethod
    async def get_current_session(self) -> SessionModel | None:
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> ResultModel[AuthModel]:
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> ResultModel[AuthModel]:
        pass

    @abstractmethod
    async def sign_out(self) -> ResultModel[None]:
        pass

    @abstractmethod
    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        pass

    @abstractmethod
    async def get_reminders(self, user_id: str) -> ResultModel[list[ReminderModel]]:
        pass

    @abstractmethod
    async def create_reminder(
        self,
        reminder: ReminderCreateModel,
    ) -> ResultModel[ReminderModel]:
        pass

    @abstractmethod
    async def update_reminder(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ResultModel[ReminderModel]:
        pass

    @abstractmethod
    async def delete_reminder(self, reminder_id: str) -> ResultModel[str]:
        pass

    def table(self, name: str) -> ITable:
        """
        Access a table by name.

        Only the reminders table is known, any other name gets a table which reads nothing and writes nothing.
        """
        if name == self.table_name:
            return ReminderTable(self)
        return UnknownTable(name)


class ReminderTable(ITable):
    _store: IStore

    def __init__(self, store: IStore):
        self._store = store

    async def list_by_owner(self, owner_id: str) -> ResultModel[list[ReminderModel]]:
        return await self._store.get_reminders(owner_id)

    async def insert(
        self,
        reminder: ReminderCreateModel,
    ) -> ResultModel[ReminderModel]:
        return await self._store.create_reminder(reminder)

    async def update_by_id(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ResultModel[ReminderModel]:
        return await self._store.update_reminder(reminder_id, updates)

    async def delete_by_id(self, reminder_id: str) -> ResultModel[str]:
        return await self._store.delete_reminder(reminder_id)


class UnknownTable(ITable):
    name: str

    def __init__(self, name: str):
        self.name = name

    async def list_by_owner(
        self,
        owner_id: str,  # noqa: ARG002
    ) -> ResultModel[list[ReminderModel]]:
        return ResultModel[list[ReminderModel]](data=[])

    async def insert(
        self,
        reminder: ReminderCreateModel,  # noqa: ARG002
    ) -> ResultModel[ReminderModel]:
        return ResultModel[ReminderModel]()

    async def update_by_id(
        self,
        reminder_id: str,  # noqa: ARG002
        updates: ReminderUpdateModel,  # noqa: ARG002
    ) -> ResultModel[ReminderModel]:
        return ResultModel[ReminderModel]()

    async def delete_by_id(self, reminder_id: str) -> ResultModel[str]:  # noqa: ARG002
        return ResultModel[str]()
