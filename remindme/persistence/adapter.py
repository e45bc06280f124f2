from remindme.helpers.config import CONFIG
from remindme.helpers.logging import logger
from remindme.helpers.monitoring import SpanAttributeEnum
from remindme.models.readiness import (
    ReadinessCheckModel,
    ReadinessEnum,
    ReadinessModel,
)
from remindme.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
    ReminderUpdateModel,
)
from remindme.models.result import ResultModel
from remindme.models.user import AuthModel, SessionModel, UserModel
from remindme.persistence.istore import AuthCallback, IStore, Subscription


class StorageAdapter(IStore):
    """
    Single entry point in front of the local and the remote backends.

    Each call is forwarded as-is to the backend selected at call time. The adapter does not retry, merge, cache nor validate. Switching backend does not migrate data, both hold disjoint data sets.
    """

    _local: IStore
    _remote: IStore | None
    _use_remote: bool

    def __init__(
        self,
        local: IStore,
        remote: IStore | None = None,
        use_remote: bool = False,
    ):
        self._local = local
        self._remote = remote
        self._use_remote = False
        self.set_use_remote(use_remote)

    def set_use_remote(self, value: bool) -> bool:
        """
        Select the backend serving the next calls.

        Raises `ValueError` if the remote backend is requested but not configured.
        """
        if value and not self._remote:
            raise ValueError("Remote backend is not configured")
        self._use_remote = bool(value)
        logger.info(
            "Storage adapter set to use %s", "remote" if self._use_remote else "local"
        )
        return self._use_remote

    @property
    def is_using_remote(self) -> bool:
        return self._use_remote

    @property
    def store(self) -> IStore:
        """
        Backend currently active.
        """
        if self._use_remote:
            if not self._remote:
                raise ValueError("Remote backend is not configured")
            SpanAttributeEnum.STORAGE_BACKEND.attribute("remote")
            return self._remote
        SpanAttributeEnum.STORAGE_BACKEND.attribute("local")
        return self._local

    @property
    def table_name(self) -> str:
        return self.store.table_name

    async def readiness(self) -> ReadinessEnum:
        return await self.store.readiness()

    async def readiness_report(self) -> ReadinessModel:
        """
        Check every configured backend, not only the active one.
        """
        checks = [
            ReadinessCheckModel(
                id="local",
                status=await self._local.readiness(),
            )
        ]
        if self._remote:
            checks.append(
                ReadinessCheckModel(
                    id="remote",
                    status=await self._remote.readiness(),
                )
            )
        return ReadinessModel.from_checks(
            checks=checks,
            version=CONFIG.version,
        )

    async def get_current_user(self) -> UserModel | None:
        return await self.store.get_current_user()

    async def get_current_session(self) -> SessionModel | None:
        return await self.store.get_current_session()

    async def sign_in(self, email: str, password: str) -> ResultModel[AuthModel]:
        return await self.store.sign_in(email, password)

    async def sign_up(self, email: str, password: str) -> ResultModel[AuthModel]:
        return await self.store.sign_up(email, password)

    async def sign_out(self) -> ResultModel[None]:
        return await self.store.sign_out()

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        return self.store.on_auth_state_change(callback)

    async def get_reminders(self, user_id: str) -> ResultModel[list[ReminderModel]]:
        return await self.store.get_reminders(user_id)

    async def create_reminder(
        self,
        reminder: ReminderCreateModel,
    ) -> ResultModel[ReminderModel]:
        return await self.store.create_reminder(reminder)

    async def update_reminder(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ResultModel[ReminderModel]:
        return await self.store.update_reminder(reminder_id, updates)

    async def delete_reminder(self, reminder_id: str) -> ResultModel[str]:
        return await self.store.delete_reminder(reminder_id)
