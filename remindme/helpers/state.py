from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel

from remindme.helpers.logging import logger
from remindme.models.reminder import (
    PriorityEnum,
    ReminderCreateModel,
    ReminderModel,
    ReminderUpdateModel,
)
from remindme.models.user import AuthEventEnum, SessionModel, UserModel
from remindme.persistence.adapter import StorageAdapter
from remindme.persistence.istore import Subscription


class FilterEnum(str, Enum):
    ACTIVE = "active"
    """Not completed."""
    ALL = "all"
    COMPLETED = "completed"
    TODAY = "today"
    """Due the same calendar day as now."""
    UPCOMING = "upcoming"
    """Due later and not completed."""


class StatsModel(BaseModel):
    active: int
    completed: int
    today: int
    total: int


class AuthState:
    """
    Principal currently signed in, kept in sync with the auth events of the active backend.
    """

    session: SessionModel | None
    user: UserModel | None
    _adapter: StorageAdapter
    _subscription: Subscription

    def __init__(self, adapter: StorageAdapter):
        self._adapter = adapter
        self.session = None
        self.user = None
        self._subscription = adapter.on_auth_state_change(self._on_event)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_using_remote(self) -> bool:
        return self._adapter.is_using_remote

    async def load(self) -> None:
        """
        Read the session persisted by the active backend.
        """
        self.session = await self._adapter.get_current_session()
        self.user = await self._adapter.get_current_user()

    async def logout(self) -> bool:
        res = await self._adapter.sign_out()
        if res.error:
            logger.error("Error signing out: %s", res.error.message)
            return False
        self.session = None
        self.user = None
        return True

    async def toggle_storage_backend(self, use_remote: bool) -> None:
        """
        Switch backend, then reload the session from the new one.

        Data is not migrated, the new backend has its own users and reminders.
        """
        self._adapter.set_use_remote(use_remote)
        self._subscription.unsubscribe()
        self._subscription = self._adapter.on_auth_state_change(self._on_event)
        await self.load()

    def close(self) -> None:
        self._subscription.unsubscribe()

    def _on_event(self, event: AuthEventEnum, session: SessionModel | None) -> None:
        logger.info("Auth state changed: %s", event.value)
        self.session = session
        self.user = session.user if session else None


class RemindersState:
    """
    In-memory list of the reminders of the signed in user.

    Failures are logged as errors, for the caller to notify the user, and never raised.
    """

    filter: FilterEnum
    reminders: list[ReminderModel]
    _adapter: StorageAdapter

    def __init__(self, adapter: StorageAdapter):
        self._adapter = adapter
        self.filter = FilterEnum.ALL
        self.reminders = []

    async def load(self) -> bool:
        user = await self._adapter.get_current_user()
        if not user:
            logger.info("No user signed in, no reminders to load")
            self.reminders = []
            return False

        res = await self._adapter.get_reminders(user.id)
        if res.error:
            logger.error("Failed to load reminders: %s", res.error.message)
            return False

        self.reminders = res.data or []
        return True

    async def add(
        self,
        title: str,
        remind_at: datetime,
        description: str | None = None,
        location: str | None = None,
        priority: PriorityEnum = PriorityEnum.MEDIUM,
    ) -> ReminderModel | None:
        user = await self._adapter.get_current_user()
        if not user:
            logger.error("Failed to create reminder: no user signed in")
            return None

        res = await self._adapter.create_reminder(
            ReminderCreateModel(
                description=description,
                location=location,
                priority=priority,
                remind_at=remind_at,
                title=title,
                user_id=user.id,
            )
        )
        if res.error or not res.data:
            logger.error(
                "Failed to create reminder: %s",
                res.error.message if res.error else "empty response",
            )
            return None

        self.reminders.insert(0, res.data)
        logger.info("Reminder created successfully")
        return res.data

    async def update(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ReminderModel | None:
        res = await self._adapter.update_reminder(reminder_id, updates)
        if res.error or not res.data:
            logger.error(
                "Failed to update reminder: %s",
                res.error.message if res.error else "empty response",
            )
            return None

        self._replace(res.data)
        logger.info("Reminder updated successfully")
        return res.data

    async def delete(self, reminder_id: str) -> bool:
        res = await self._adapter.delete_reminder(reminder_id)
        if res.error:
            logger.error("Failed to delete reminder: %s", res.error.message)
            return False

        self.reminders = [r for r in self.reminders if r.id != reminder_id]
        logger.info("Reminder deleted successfully")
        return True

    async def toggle_complete(self, reminder_id: str) -> ReminderModel | None:
        reminder = next((r for r in self.reminders if r.id == reminder_id), None)
        if not reminder:
            return None

        res = await self._adapter.update_reminder(
            reminder_id, ReminderUpdateModel(completed=not reminder.completed)
        )
        if res.error or not res.data:
            logger.error(
                "Failed to update reminder status: %s",
                res.error.message if res.error else "empty response",
            )
            return None

        self._replace(res.data)
        logger.info(
            "Reminder completed" if res.data.completed else "Reminder marked as pending"
        )
        return res.data

    def filtered(
        self,
        filter: FilterEnum | None = None,  # noqa: A002
        now: datetime | None = None,
    ) -> list[ReminderModel]:
        """
        Reminders matching the filter, the current one if not given.

        Calendar days are compared in the time zone of `now`, UTC by default.
        """
        filter = filter or self.filter  # noqa: A001
        now = _aware(now or datetime.now(UTC))
        match filter:
            case FilterEnum.ACTIVE:
                return [r for r in self.reminders if not r.completed]
            case FilterEnum.COMPLETED:
                return [r for r in self.reminders if r.completed]
            case FilterEnum.TODAY:
                return [r for r in self.reminders if _same_day(r.remind_at, now)]
            case FilterEnum.UPCOMING:
                return [
                    r
                    for r in self.reminders
                    if _aware(r.remind_at) > now and not r.completed
                ]
            case _:
                return list(self.reminders)

    def stats(self, now: datetime | None = None) -> StatsModel:
        now = _aware(now or datetime.now(UTC))
        total = len(self.reminders)
        completed = sum(1 for r in self.reminders if r.completed)
        return StatsModel(
            active=total - completed,
            completed=completed,
            today=sum(1 for r in self.reminders if _same_day(r.remind_at, now)),
            total=total,
        )

    def _replace(self, reminder: ReminderModel) -> None:
        self.reminders = [
            reminder if r.id == reminder.id else r for r in self.reminders
        ]


def _aware(value: datetime) -> datetime:
    """
    Naive timestamps are considered UTC.
    """
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _same_day(value: datetime, now: datetime) -> bool:
    return _aware(value).astimezone(now.tzinfo).date() == now.date()
