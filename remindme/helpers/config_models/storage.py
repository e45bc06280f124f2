from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator

from remindme.persistence.ikv import IKeyValue
from remindme.persistence.istore import IStore

if TYPE_CHECKING:
    from remindme.persistence.adapter import StorageAdapter


class ModeEnum(str, Enum):
    LOCAL = "local"
    """Use the on-device key-value store."""
    REMOTE = "remote"
    """Use the hosted Supabase project."""


class KeyValueModeEnum(str, Enum):
    MEMORY = "memory"
    """Keep the local store in process memory, lost on exit."""
    SQLITE = "sqlite"
    """Keep the local store in a SQLite file."""


class MemoryModel(BaseModel, frozen=True):
    @cached_property
    def instance(self) -> IKeyValue:
        from remindme.persistence.memory import (
            MemoryKeyValue,
        )

        return MemoryKeyValue(self)


class SqliteModel(BaseModel, frozen=True):
    path: str = ".local/remindme"
    schema_version: int = Field(default=1, ge=1)
    table: str = "kv"

    def full_path(self) -> str:
        """
        Returns the full path to the sqlite database file.

        Formatted as: `{path}-v{schema_version}.sqlite`.
        """
        return f"{self.path}-v{self.schema_version}.sqlite"

    @cached_property
    def instance(self) -> IKeyValue:
        from remindme.persistence.sqlite import (
            SqliteKeyValue,
        )

        return SqliteKeyValue(self)


class LocalModel(BaseModel, frozen=True):
    memory: MemoryModel | None = MemoryModel()  # Object is fully defined by default
    mode: KeyValueModeEnum = KeyValueModeEnum.SQLITE
    password_iterations: int = Field(default=100_000, ge=1)
    prefix: str = "remindme_app_"
    sqlite: SqliteModel | None = SqliteModel()  # Object is fully defined by default
    table: str = "reminders"

    @field_validator("sqlite")
    @classmethod
    def _validate_sqlite(
        cls,
        sqlite: SqliteModel | None,
        info: ValidationInfo,
    ) -> SqliteModel | None:
        if not sqlite and info.data.get("mode", None) == KeyValueModeEnum.SQLITE:
            raise ValueError("SQLite config required")
        return sqlite

    @cached_property
    def kv(self) -> IKeyValue:
        if self.mode == KeyValueModeEnum.SQLITE:
            assert self.sqlite
            return self.sqlite.instance

        assert self.memory
        return self.memory.instance

    @cached_property
    def instance(self) -> IStore:
        from remindme.persistence.local import (
            LocalStore,
        )

        return LocalStore(
            config=self,
            kv=self.kv,
        )


class SupabaseModel(BaseModel, frozen=True):
    email_redirect_to: str | None = None
    """Link sent in the sign up confirmation email."""
    key: SecretStr
    table: str = "reminders"
    url: str

    @cached_property
    def instance(self) -> IStore:
        from remindme.persistence.supabase import (
            SupabaseStore,
        )

        return SupabaseStore(self)


class StorageModel(BaseModel):
    local: LocalModel = LocalModel()  # Object is fully defined by default
    mode: ModeEnum = ModeEnum.LOCAL
    remote: SupabaseModel | None = Field(default=None, validate_default=True)

    @field_validator("remote")
    @classmethod
    def _validate_remote(
        cls,
        remote: SupabaseModel | None,
        info: ValidationInfo,
    ) -> SupabaseModel | None:
        if not remote and info.data.get("mode", None) == ModeEnum.REMOTE:
            raise ValueError("Supabase config required")
        return remote

    @cached_property
    def instance(self) -> "StorageAdapter":
        from remindme.persistence.adapter import (
            StorageAdapter,
        )

        return StorageAdapter(
            local=self.local.instance,
            remote=self.remote.instance if self.remote else None,
            use_remote=self.mode == ModeEnum.REMOTE,
        )
