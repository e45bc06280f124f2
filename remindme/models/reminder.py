from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field


class PriorityEnum(str, Enum):
    HIGH = "high"
    LOW = "low"
    MEDIUM = "medium"


class ReminderCreateModel(BaseModel):
    completed: bool = False
    description: str | None = None
    location: str | None = None
    """JSON blob with address, lat, lng and placeId, stored as-is."""
    priority: PriorityEnum = PriorityEnum.MEDIUM
    remind_at: datetime
    title: str = Field(min_length=1)
    user_id: str = Field(frozen=True)


class ReminderModel(ReminderCreateModel):
    # Immutable fields
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)
    id: str = Field(frozen=True)
    # Editable fields
    updated_at: datetime | None = None


class ReminderUpdateModel(BaseModel):
    """
    Partial update of a reminder.

    Only the fields explicitly set are merged, the others are left untouched.
    """

    REQUIRED_FIELDS: ClassVar[set[str]] = {
        "completed",
        "priority",
        "remind_at",
        "title",
    }

    completed: bool | None = None
    description: str | None = None
    location: str | None = None
    priority: PriorityEnum | None = None
    remind_at: datetime | None = None
    title: str | None = Field(default=None, min_length=1)

    def changes(self, json: bool = False) -> dict[str, Any]:
        """
        Fields explicitly set by the caller.

        Setting a required field to `None` is ignored, optional fields can be cleared.
        """
        return {
            field: value
            for field, value in self.model_dump(
                exclude_unset=True,
                mode="json" if json else "python",
            ).items()
            if value is not None or field not in self.REQUIRED_FIELDS
        }
