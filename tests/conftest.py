import random
import string
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest
from pydantic import BaseModel
from supabase import AuthError, PostgrestAPIError

from remindme.helpers.config_models.storage import LocalModel, MemoryModel, SupabaseModel
from remindme.persistence.adapter import StorageAdapter
from remindme.persistence.local import LocalStore
from remindme.persistence.memory import MemoryKeyValue
from remindme.persistence.supabase import SupabaseStore


class AuthErrorMock(AuthError):
    """
    Auth error as raised by the Supabase SDK, without depending on its constructor signature.
    """

    def __init__(self, message: str, code: str) -> None:
        Exception.__init__(self, message)
        self.code = code
        self.message = message
        self.status = 400


class UserMock(BaseModel):
    app_metadata: dict[str, Any] = {}
    aud: str = "authenticated"
    created_at: datetime
    email: str
    id: str
    user_metadata: dict[str, Any] = {}


class SessionMock(BaseModel):
    access_token: str
    expires_at: int
    expires_in: int = 3600
    refresh_token: str
    token_type: str = "bearer"
    user: UserMock


class AuthResponseMock(BaseModel):
    session: SessionMock | None = None
    user: UserMock | None = None


class UserResponseMock(BaseModel):
    user: UserMock


class SubscriptionMock:
    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self.unsubscribe = unsubscribe


class APIResponseMock(BaseModel):
    count: int | None = None
    data: list[dict[str, Any]]


class AuthClientMock:
    """
    In-memory imitation of the Supabase auth client.
    """

    _callbacks: list[Callable[[str, SessionMock | None], None]]
    _session: SessionMock | None
    _users: dict[str, tuple[UserMock, str]]

    def __init__(self) -> None:
        self._callbacks = []
        self._session = None
        self._users = {}

    async def sign_up(self, credentials: dict[str, Any]) -> AuthResponseMock:
        email = credentials["email"]
        if email in self._users:
            raise AuthErrorMock("User already registered", "user_already_exists")
        user = UserMock(
            created_at=datetime.now(UTC),
            email=email,
            id=str(uuid4()),
        )
        self._users[email] = (user, credentials["password"])
        return self._start_session(user)

    async def sign_in_with_password(
        self, credentials: dict[str, Any]
    ) -> AuthResponseMock:
        record = self._users.get(credentials["email"])
        if not record or record[1] != credentials["password"]:
            raise AuthErrorMock("Invalid login credentials", "invalid_credentials")
        return self._start_session(record[0])

    async def sign_out(self) -> None:
        self._session = None
        self._emit("SIGNED_OUT", None)

    async def get_user(self) -> UserResponseMock | None:
        if not self._session:
            return None
        return UserResponseMock(user=self._session.user)

    async def get_session(self) -> SessionMock | None:
        return self._session

    def on_auth_state_change(
        self, callback: Callable[[str, SessionMock | None], None]
    ) -> SubscriptionMock:
        self._callbacks.append(callback)
        return SubscriptionMock(lambda: self._callbacks.remove(callback))

    def emit(self, event: str, session: SessionMock | None) -> None:
        self._emit(event, session)

    def _start_session(self, user: UserMock) -> AuthResponseMock:
        self._session = SessionMock(
            access_token=f"jwt-{uuid4()}",
            expires_at=int((datetime.now(UTC) + timedelta(hours=1)).timestamp()),
            refresh_token=f"refresh-{uuid4()}",
            user=user,
        )
        self._emit("SIGNED_IN", self._session)
        return AuthResponseMock(
            session=self._session,
            user=user,
        )

    def _emit(self, event: str, session: SessionMock | None) -> None:
        for callback in list(self._callbacks):
            callback(event, session)


class QueryMock:
    """
    In-memory imitation of the PostgREST query builder, for the calls the store makes.
    """

    def __init__(self, client: "SupabaseClientMock", table: str) -> None:
        self._client = client
        self._filters: list[tuple[str, Any]] = []
        self._limit: int | None = None
        self._operation = "select"
        self._order: tuple[str, bool] | None = None
        self._payload: dict[str, Any] = {}
        self._table = table

    def select(self, *columns: str) -> "QueryMock":  # noqa: ARG002
        self._operation = "select"
        return self

    def insert(self, row: dict[str, Any]) -> "QueryMock":
        self._operation = "insert"
        self._payload = row
        return self

    def update(self, changes: dict[str, Any]) -> "QueryMock":
        self._operation = "update"
        self._payload = changes
        return self

    def delete(self) -> "QueryMock":
        self._operation = "delete"
        return self

    def eq(self, column: str, value: Any) -> "QueryMock":
        self._filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "QueryMock":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "QueryMock":
        self._limit = count
        return self

    async def execute(self) -> APIResponseMock:
        if self._client.fail_next:
            error, self._client.fail_next = self._client.fail_next, None
            raise error

        rows = self._client.tables.setdefault(self._table, [])
        matching = [
            row
            for row in rows
            if all(row.get(column) == value for column, value in self._filters)
        ]

        match self._operation:
            case "insert":
                now = self._client.now().isoformat(timespec="microseconds")
                row = {
                    "completed": False,
                    "priority": "medium",
                    **self._payload,
                    "created_at": now,
                    "id": str(uuid4()),
                    "updated_at": now,
                }
                rows.append(row)
                return APIResponseMock(data=[dict(row)])
            case "update":
                for row in matching:
                    row.update(self._payload)
                return APIResponseMock(data=[dict(row) for row in matching])
            case "delete":
                self._client.tables[self._table] = [
                    row for row in rows if row not in matching
                ]
                return APIResponseMock(data=[dict(row) for row in matching])

        if self._order:
            column, desc = self._order
            matching = sorted(matching, key=lambda row: row[column], reverse=desc)
        if self._limit is not None:
            matching = matching[: self._limit]
        return APIResponseMock(data=[dict(row) for row in matching])


class SupabaseClientMock:
    """
    In-memory imitation of the Supabase async client.

    Set `fail_next` to make the next query raise.
    """

    auth: AuthClientMock
    fail_next: Exception | None
    tables: dict[str, list[dict[str, Any]]]
    _last_now: datetime

    def __init__(self) -> None:
        self.auth = AuthClientMock()
        self.fail_next = None
        self.tables = {}
        self._last_now = datetime.now(UTC)

    def table(self, name: str) -> QueryMock:
        return QueryMock(self, name)

    def now(self) -> datetime:
        """
        Current time, strictly increasing between calls, as a database clock.
        """
        now = datetime.now(UTC)
        if now <= self._last_now:
            now = self._last_now + timedelta(microseconds=1)
        self._last_now = now
        return now


def postgrest_error(message: str) -> PostgrestAPIError:
    return PostgrestAPIError(
        {
            "code": "PGRST000",
            "details": None,
            "hint": None,
            "message": message,
        }
    )


@pytest.fixture
def random_text() -> str:
    text = "".join(random.choice(string.ascii_lowercase) for _ in range(16))
    return text


@pytest.fixture
def email(random_text: str) -> str:
    return f"{random_text}@test.com"


@pytest.fixture
def local_config() -> LocalModel:
    return LocalModel(
        password_iterations=1_000,  # Fast enough for tests
    )


@pytest.fixture
def kv() -> MemoryKeyValue:
    return MemoryKeyValue(MemoryModel())


@pytest.fixture
def local_store(local_config: LocalModel, kv: MemoryKeyValue) -> LocalStore:
    return LocalStore(
        config=local_config,
        kv=kv,
    )


@pytest.fixture
def supabase_client() -> SupabaseClientMock:
    return SupabaseClientMock()


@pytest.fixture
def remote_config() -> SupabaseModel:
    return SupabaseModel(
        key="dummy",  # pyright: ignore
        url="http://localhost:54321",
    )


@pytest.fixture
def remote_store(
    remote_config: SupabaseModel,
    supabase_client: SupabaseClientMock,
) -> SupabaseStore:
    return SupabaseStore(
        client=supabase_client,  # pyright: ignore
        config=remote_config,
    )


@pytest.fixture
def adapter(local_store: LocalStore, remote_store: SupabaseStore) -> StorageAdapter:
    return StorageAdapter(
        local=local_store,
        remote=remote_store,
    )
