import asyncio
import hashlib
import secrets
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from remindme.helpers.config_models.storage import LocalModel
from remindme.helpers.logging import logger
from remindme.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from remindme.models.readiness import ReadinessEnum
from remindme.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
    ReminderUpdateModel,
)
from remindme.models.result import ErrorEnum, ResultModel
from remindme.models.user import (
    AuthEventEnum,
    AuthModel,
    LocalUserModel,
    SessionModel,
    UserModel,
)
from remindme.persistence.ikv import IKeyValue
from remindme.persistence.istore import AuthCallback, IStore, Subscription

_reminders_adapter = TypeAdapter(list[ReminderModel])
_users_adapter = TypeAdapter(dict[str, LocalUserModel])


class LocalStore(IStore):
    """
    Storage backend living on the device, without any network dependency.

    Layout of the key-value store, all keys share the configured prefix:
    - `user`: user of the current session
    - `session`: current session, with its token
    - `users`: every registered user, by email
    - `reminders_<user id>`: reminders of a user, newest first

    Every write replaces the whole value of a key. Concurrent writers are not coordinated, the last one wins.
    """

    _config: LocalModel
    _kv: IKeyValue
    _listeners: list[AuthCallback]

    def __init__(self, config: LocalModel, kv: IKeyValue):
        logger.info("Using local store with prefix %s", config.prefix)
        self._config = config
        self._kv = kv
        self._listeners = []

    @property
    def table_name(self) -> str:
        return self._config.table

    async def readiness(self) -> ReadinessEnum:
        return await self._kv.readiness()

    @start_as_current_span("local_get_current_user")
    async def get_current_user(self) -> UserModel | None:
        raw = await self._kv.get(self._key_user())
        if not raw:
            return None
        try:
            return UserModel.model_validate_json(raw)
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
        return None

    @start_as_current_span("local_get_current_session")
    async def get_current_session(self) -> SessionModel | None:
        raw = await self._kv.get(self._key_session())
        if not raw:
            return None
        try:
            return SessionModel.model_validate_json(raw)
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
        return None

    @start_as_current_span("local_sign_in")
    async def sign_in(self, email: str, password: str) -> ResultModel[AuthModel]:
        users = await self._load_users()
        if users is None:
            return ResultModel[AuthModel].fail(
                ErrorEnum.DESERIALIZATION_ERROR, "Cannot read registered users"
            )

        record = users.get(email)
        if not record or not await self._verify_password(record, password):
            logger.info("Invalid login credentials for %s", email)
            return ResultModel[AuthModel].fail(
                ErrorEnum.INVALID_CREDENTIALS, "Invalid login credentials"
            )

        # Create a session
        user = record.to_user()
        session = SessionModel(
            access_token=f"local-{secrets.token_urlsafe(32)}",
            user=user,
        )

        # Store current user and session
        await self._kv.set(self._key_user(), user.model_dump_json())
        await self._kv.set(self._key_session(), session.model_dump_json())
        SpanAttributeEnum.USER_ID.attribute(user.id)
        logger.info("User %s signed in", user.id)

        self._emit(AuthEventEnum.SIGNED_IN, session)
        return ResultModel[AuthModel](
            data=AuthModel(
                session=session,
                user=user,
            )
        )

    @start_as_current_span("local_sign_up")
    async def sign_up(self, email: str, password: str) -> ResultModel[AuthModel]:
        users = await self._load_users()
        if users is None:
            return ResultModel[AuthModel].fail(
                ErrorEnum.DESERIALIZATION_ERROR, "Cannot read registered users"
            )

        if email in users:
            return ResultModel[AuthModel].fail(
                ErrorEnum.ALREADY_EXISTS, "User already exists"
            )

        # Create new user
        salt = secrets.token_hex(16)
        user = LocalUserModel(
            created_at=datetime.now(UTC),
            email=email,
            id=str(uuid4()),
            password_hash=await self._hash_password(password, salt),
            password_salt=salt,
        )
        users[email] = user
        await self._kv.set(self._key_users(), _users_adapter.dump_json(users).decode())

        # Create user data container
        await self._kv.set(self._key_reminders(user.id), "[]")
        logger.info("Registered user %s", user.id)

        # Auto sign-in after registration
        return await self.sign_in(email, password)

    @start_as_current_span("local_sign_out")
    async def sign_out(self) -> ResultModel[None]:
        await self._kv.delete(self._key_user())
        await self._kv.delete(self._key_session())
        self._emit(AuthEventEnum.SIGNED_OUT, None)
        return ResultModel[None]()

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        self._listeners.append(callback)
        return Subscription(lambda: self._listeners.remove(callback))

    @start_as_current_span("local_get_reminders")
    async def get_reminders(self, user_id: str) -> ResultModel[list[ReminderModel]]:
        SpanAttributeEnum.USER_ID.attribute(user_id)
        reminders = await self._load_reminders(user_id)
        if reminders is None:
            return ResultModel[list[ReminderModel]].fail(
                ErrorEnum.DESERIALIZATION_ERROR,
                f"Cannot read reminders of user {user_id}",
            )
        return ResultModel[list[ReminderModel]](data=reminders)

    @start_as_current_span("local_create_reminder")
    async def create_reminder(
        self,
        reminder: ReminderCreateModel,
    ) -> ResultModel[ReminderModel]:
        SpanAttributeEnum.USER_ID.attribute(reminder.user_id)
        reminders = await self._load_reminders(reminder.user_id)
        if reminders is None:
            return ResultModel[ReminderModel].fail(
                ErrorEnum.DESERIALIZATION_ERROR,
                f"Cannot read reminders of user {reminder.user_id}",
            )

        now = datetime.now(UTC)
        created = ReminderModel(
            **reminder.model_dump(include=set(ReminderCreateModel.model_fields)),
            created_at=now,
            id=str(uuid4()),
            updated_at=now,
        )
        SpanAttributeEnum.REMINDER_ID.attribute(created.id)

        # Newest first
        reminders.insert(0, created)
        await self._save_reminders(reminder.user_id, reminders)
        logger.debug("Created reminder %s", created.id)

        return ResultModel[ReminderModel](data=created)

    @start_as_current_span("local_update_reminder")
    async def update_reminder(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ResultModel[ReminderModel]:
        SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
        user = await self.get_current_user()
        if not user:
            return ResultModel[ReminderModel].fail(
                ErrorEnum.NOT_AUTHENTICATED, "User not authenticated"
            )

        reminders = await self._load_reminders(user.id)
        if reminders is None:
            return ResultModel[ReminderModel].fail(
                ErrorEnum.DESERIALIZATION_ERROR,
                f"Cannot read reminders of user {user.id}",
            )

        index = next(
            (i for i, reminder in enumerate(reminders) if reminder.id == reminder_id),
            None,
        )
        if index is None:
            return ResultModel[ReminderModel].fail(
                ErrorEnum.NOT_FOUND, "Reminder not found"
            )

        # Shallow merge, validated as a whole
        current = reminders[index]
        updated = ReminderModel.model_validate(
            {
                **current.model_dump(),
                **updates.changes(),
                "updated_at": self._next_timestamp(current.updated_at),
            }
        )
        reminders[index] = updated
        await self._save_reminders(user.id, reminders)
        logger.debug("Updated reminder %s", reminder_id)

        return ResultModel[ReminderModel](data=updated)

    @start_as_current_span("local_delete_reminder")
    async def delete_reminder(self, reminder_id: str) -> ResultModel[str]:
        SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
        user = await self.get_current_user()
        if not user:
            return ResultModel[str].fail(
                ErrorEnum.NOT_AUTHENTICATED, "User not authenticated"
            )

        reminders = await self._load_reminders(user.id)
        if reminders is None:
            return ResultModel[str].fail(
                ErrorEnum.DESERIALIZATION_ERROR,
                f"Cannot read reminders of user {user.id}",
            )

        kept = [reminder for reminder in reminders if reminder.id != reminder_id]
        if len(kept) != len(reminders):
            await self._save_reminders(user.id, kept)
            logger.debug("Deleted reminder %s", reminder_id)

        return ResultModel[str](data=reminder_id)

    async def _load_users(self) -> dict[str, LocalUserModel] | None:
        """
        Load every registered user, by email.

        Returns `None` if the stored value cannot be parsed.
        """
        raw = await self._kv.get(self._key_users())
        if not raw:
            return {}
        try:
            return _users_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Parsing error on registered users: %s", e.errors())
        return None

    async def _load_reminders(self, user_id: str) -> list[ReminderModel] | None:
        """
        Load the reminders of a user, newest first.

        Returns `None` if the stored value cannot be parsed.
        """
        raw = await self._kv.get(self._key_reminders(user_id))
        if not raw:
            return []
        try:
            return _reminders_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Parsing error on reminders of %s: %s", user_id, e.errors())
        return None

    async def _save_reminders(
        self,
        user_id: str,
        reminders: list[ReminderModel],
    ) -> None:
        await self._kv.set(
            self._key_reminders(user_id),
            _reminders_adapter.dump_json(reminders).decode(),
        )

    async def _hash_password(self, password: str, salt: str) -> str:
        """
        Derive the password with PBKDF2-HMAC-SHA256.

        Runs in a thread, as the derivation is CPU bound.
        """
        digest = await asyncio.to_thread(
            hashlib.pbkdf2_hmac,
            "sha256",
            password.encode(),
            bytes.fromhex(salt),
            self._config.password_iterations,
        )
        return digest.hex()

    async def _verify_password(self, record: LocalUserModel, password: str) -> bool:
        return secrets.compare_digest(
            await self._hash_password(password, record.password_salt),
            record.password_hash,
        )

    def _emit(self, event: AuthEventEnum, session: SessionModel | None) -> None:
        # Copy, as a listener can unsubscribe while being called
        for callback in list(self._listeners):
            callback(event, session)

    @staticmethod
    def _next_timestamp(previous: datetime | None) -> datetime:
        """
        Current time, strictly after the previous timestamp.
        """
        now = datetime.now(UTC)
        if previous and now <= previous:
            return previous + timedelta(microseconds=1)
        return now

    def _key_user(self) -> str:
        return f"{self._config.prefix}user"

    def _key_session(self) -> str:
        return f"{self._config.prefix}session"

    def _key_users(self) -> str:
        return f"{self._config.prefix}users"

    def _key_reminders(self, user_id: str) -> str:
        return f"{self._config.prefix}reminders_{user_id}"
