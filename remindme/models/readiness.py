from enum import Enum

from pydantic import BaseModel


class ReadinessEnum(str, Enum):
    FAIL = "fail"
    """The backend is not ready."""
    OK = "ok"
    """The backend is ready."""


class ReadinessCheckModel(BaseModel):
    id: str
    status: ReadinessEnum


class ReadinessModel(BaseModel):
    checks: list[ReadinessCheckModel]
    status: ReadinessEnum
    version: str

    @classmethod
    def from_checks(
        cls,
        checks: list[ReadinessCheckModel],
        version: str,
    ) -> "ReadinessModel":
        """
        Aggregate the checks, the whole is ready only if every check is.
        """
        return cls(
            checks=checks,
            status=ReadinessEnum.OK
            if all(check.status == ReadinessEnum.OK for check in checks)
            else ReadinessEnum.FAIL,
            version=version,
        )
