from datetime import UTC, datetime
from typing import Any

from httpx import HTTPError
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from pydantic import TypeAdapter, ValidationError
from supabase import AsyncClient, AuthError, PostgrestAPIError, acreate_client

from remindme.helpers.cache import lru_acache
from remindme.helpers.config import CONFIG
from remindme.helpers.config_models.storage import SupabaseModel
from remindme.helpers.logging import logger
from remindme.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from remindme.models.readiness import ReadinessEnum
from remindme.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
    ReminderUpdateModel,
)
from remindme.models.result import ErrorEnum, ResultModel
from remindme.models.user import AuthEventEnum, AuthModel, SessionModel, UserModel
from remindme.persistence.istore import AuthCallback, IStore, Subscription

# Instrument httpx, used by the Supabase SDK
if CONFIG.monitoring.tracing.instrument_transports:
    HTTPXClientInstrumentor().instrument()

_reminders_adapter = TypeAdapter(list[ReminderModel])

# Supabase auth error codes with a meaning of their own
# See: https://supabase.com/docs/guides/auth/debugging/error-codes
_AUTH_ERROR_CODES = {
    "email_exists": ErrorEnum.ALREADY_EXISTS,
    "invalid_credentials": ErrorEnum.INVALID_CREDENTIALS,
    "user_already_exists": ErrorEnum.ALREADY_EXISTS,
}


class SupabaseStore(IStore):
    """
    Storage backend on a hosted Supabase project.

    Authentication is delegated to Supabase auth. Reminders are rows of a single table, filtered by `user_id`. Ownership on update and delete is left to the row level security policies of the project.
    """

    _client: AsyncClient | None
    _config: SupabaseModel
    _listeners: list[AuthCallback]

    def __init__(self, config: SupabaseModel, client: AsyncClient | None = None):
        logger.info("Using Supabase project %s with table %s", config.url, config.table)
        self._config = config
        self._listeners = []
        self._client = client
        if client:
            client.auth.on_auth_state_change(self._on_remote_event)

    @property
    def table_name(self) -> str:
        return self._config.table

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the Supabase project.

        This reads at most one row of the reminders table.
        """
        try:
            client = await self._use_client()
            await client.table(self._config.table).select("id").limit(1).execute()
            return ReadinessEnum.OK
        except (HTTPError, PostgrestAPIError):
            logger.exception("Error requesting Supabase")
        except Exception:
            logger.exception("Unknown error while checking Supabase readiness")
        return ReadinessEnum.FAIL

    @start_as_current_span("supabase_get_current_user")
    async def get_current_user(self) -> UserModel | None:
        client = await self._use_client()
        try:
            res = await client.auth.get_user()
        except (AuthError, HTTPError):
            logger.warning("Cannot load current user", exc_info=True)
            return None
        if not res or not res.user:
            return None
        try:
            return self._to_user(res.user)
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
        return None

    @start_as_current_span("supabase_get_current_session")
    async def get_current_session(self) -> SessionModel | None:
        client = await self._use_client()
        try:
            session = await client.auth.get_session()
        except (AuthError, HTTPError):
            logger.warning("Cannot load current session", exc_info=True)
            return None
        if not session:
            return None
        try:
            return self._to_session(session)
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
        return None

    @start_as_current_span("supabase_sign_in")
    async def sign_in(self, email: str, password: str) -> ResultModel[AuthModel]:
        client = await self._use_client()
        try:
            res = await client.auth.sign_in_with_password(
                {
                    "email": email,
                    "password": password,
                }
            )
        except (AuthError, HTTPError) as e:
            return self._fail(ResultModel[AuthModel], e)
        return self._to_auth(res.user, res.session)

    @start_as_current_span("supabase_sign_up")
    async def sign_up(self, email: str, password: str) -> ResultModel[AuthModel]:
        client = await self._use_client()
        credentials: dict[str, Any] = {
            "email": email,
            "password": password,
        }
        if self._config.email_redirect_to:
            credentials["options"] = {
                "email_redirect_to": self._config.email_redirect_to,
            }
        try:
            res = await client.auth.sign_up(credentials)
        except (AuthError, HTTPError) as e:
            return self._fail(ResultModel[AuthModel], e)
        # Session is empty when the project requires an email confirmation
        return self._to_auth(res.user, res.session)

    @start_as_current_span("supabase_sign_out")
    async def sign_out(self) -> ResultModel[None]:
        client = await self._use_client()
        try:
            await client.auth.sign_out()
        except (AuthError, HTTPError) as e:
            return self._fail(ResultModel[None], e)
        return ResultModel[None]()

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        self._listeners.append(callback)
        return Subscription(lambda: self._listeners.remove(callback))

    @start_as_current_span("supabase_get_reminders")
    async def get_reminders(self, user_id: str) -> ResultModel[list[ReminderModel]]:
        SpanAttributeEnum.USER_ID.attribute(user_id)
        client = await self._use_client()
        try:
            res = (
                await client.table(self._config.table)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except (HTTPError, PostgrestAPIError) as e:
            return self._fail(ResultModel[list[ReminderModel]], e)

        try:
            reminders = _reminders_adapter.validate_python(res.data)
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
            return ResultModel[list[ReminderModel]].fail(
                ErrorEnum.DESERIALIZATION_ERROR,
                f"Cannot read reminders of user {user_id}",
            )
        return ResultModel[list[ReminderModel]](data=reminders)

    @start_as_current_span("supabase_create_reminder")
    async def create_reminder(
        self,
        reminder: ReminderCreateModel,
    ) -> ResultModel[ReminderModel]:
        SpanAttributeEnum.USER_ID.attribute(reminder.user_id)
        client = await self._use_client()
        # Id and timestamps are assigned by the database
        row = reminder.model_dump(
            exclude_none=True,
            include=set(ReminderCreateModel.model_fields),
            mode="json",
        )
        try:
            res = await client.table(self._config.table).insert(row).execute()
        except (HTTPError, PostgrestAPIError) as e:
            return self._fail(ResultModel[ReminderModel], e)
        return self._first_row(
            res.data, ErrorEnum.BACKEND_ERROR, "Insert returned no row"
        )

    @start_as_current_span("supabase_update_reminder")
    async def update_reminder(
        self,
        reminder_id: str,
        updates: ReminderUpdateModel,
    ) -> ResultModel[ReminderModel]:
        SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
        client = await self._use_client()
        changes = {
            **updates.changes(json=True),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            res = (
                await client.table(self._config.table)
                .update(changes)
                .eq("id", reminder_id)
                .execute()
            )
        except (HTTPError, PostgrestAPIError) as e:
            return self._fail(ResultModel[ReminderModel], e)
        return self._first_row(res.data, ErrorEnum.NOT_FOUND, "Reminder not found")

    @start_as_current_span("supabase_delete_reminder")
    async def delete_reminder(self, reminder_id: str) -> ResultModel[str]:
        SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
        client = await self._use_client()
        try:
            await (
                client.table(self._config.table)
                .delete()
                .eq("id", reminder_id)
                .execute()
            )
        except (HTTPError, PostgrestAPIError) as e:
            return self._fail(ResultModel[str], e)
        return ResultModel[str](data=reminder_id)

    def _on_remote_event(self, event: str, session: Any) -> None:
        """
        Forward a Supabase auth event to the listeners.
        """
        try:
            auth_event = AuthEventEnum(event)
        except ValueError:
            logger.debug("Ignoring auth event %s", event)
            return
        parsed = None
        if session:
            try:
                parsed = self._to_session(session)
            except ValidationError as e:
                logger.debug("Parsing error: %s", e.errors())
        # Copy, as a listener can unsubscribe while being called
        for callback in list(self._listeners):
            callback(auth_event, parsed)

    def _to_auth(self, user: Any, session: Any) -> ResultModel[AuthModel]:
        try:
            return ResultModel[AuthModel](
                data=AuthModel(
                    session=self._to_session(session) if session else None,
                    user=self._to_user(user) if user else None,
                )
            )
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
        return ResultModel[AuthModel].fail(
            ErrorEnum.DESERIALIZATION_ERROR, "Cannot read auth response"
        )

    @staticmethod
    def _to_user(user: Any) -> UserModel:
        return UserModel.model_validate(user.model_dump(mode="json"))

    @staticmethod
    def _to_session(session: Any) -> SessionModel:
        return SessionModel.model_validate(session.model_dump(mode="json"))

    @staticmethod
    def _first_row(
        rows: list[dict[str, Any]],
        empty_code: ErrorEnum,
        empty_message: str,
    ) -> ResultModel[ReminderModel]:
        """
        Parse the first row returned by a write.
        """
        if not rows:
            return ResultModel[ReminderModel].fail(empty_code, empty_message)
        try:
            return ResultModel[ReminderModel](
                data=ReminderModel.model_validate(rows[0])
            )
        except ValidationError as e:
            logger.debug("Parsing error: %s", e.errors())
        return ResultModel[ReminderModel].fail(
            ErrorEnum.DESERIALIZATION_ERROR, "Cannot read written row"
        )

    @staticmethod
    def _fail(result: type[ResultModel], e: Exception) -> ResultModel:
        """
        Pass through the error reported by Supabase.
        """
        code = ErrorEnum.BACKEND_ERROR
        message = str(e)
        if isinstance(e, AuthError):
            code = _AUTH_ERROR_CODES.get(e.code or "", ErrorEnum.BACKEND_ERROR)
            message = e.message
        elif isinstance(e, PostgrestAPIError):
            message = e.message or message
        logger.warning("Supabase error (%s): %s", code.value, message)
        return result.fail(code, message)

    async def _use_client(self) -> AsyncClient:
        """
        Return the Supabase client, created on first use.
        """
        if self._client:
            return self._client
        return await self._create_client()

    @lru_acache()
    async def _create_client(self) -> AsyncClient:
        """
        Create the Supabase client for the running event loop.

        Object is cached for performance.
        """
        logger.info("Connecting to Supabase project %s", self._config.url)
        client = await acreate_client(
            self._config.url,
            self._config.key.get_secret_value(),
        )
        client.auth.on_auth_state_change(self._on_remote_event)
        return client
