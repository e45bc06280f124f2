from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuthEventEnum(str, Enum):
    # Same values as the Supabase auth client events
    INITIAL_SESSION = "INITIAL_SESSION"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_DELETED = "USER_DELETED"
    USER_UPDATED = "USER_UPDATED"


class UserModel(BaseModel):
    # Immutable fields
    created_at: datetime | None = Field(default=None, frozen=True)
    email: str = Field(frozen=True)
    id: str = Field(frozen=True)
    # Editable fields
    user_metadata: dict[str, Any] = {}


class LocalUserModel(UserModel):
    """
    User record of the local backend, with its credential material.

    Never returned to callers, see `to_user`.
    """

    password_hash: str
    password_salt: str

    def to_user(self) -> UserModel:
        return UserModel.model_validate(
            self.model_dump(exclude={"password_hash", "password_salt"})
        )


class SessionModel(BaseModel):
    access_token: str
    expires_at: int | None = None
    refresh_token: str | None = None
    user: UserModel


class AuthModel(BaseModel):
    session: SessionModel | None = None
    user: UserModel | None = None
