"""Task domain models and enums."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    """Current UTC time as an ISO string with a trailing Z."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class TaskUseType(StrEnum):
    """Whether a task can be completed repeatedly."""

    LIMITED = "Limited"
    UNLIMITED = "Unlimited"


class TaskFrequency(StrEnum):
    """How often a limited task comes around."""

    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


class Task(BaseModel):
    """Task data transfer object, stored inside the user state document."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Unique task ID (millisecond timestamp based)")
    name: str = Field(..., description="Task name, unique case-insensitively at creation")
    points: int = Field(..., description="Points awarded on completion")
    category: str = Field(default="general", description="ID of the category the task belongs to")
    use_type: TaskUseType = Field(default=TaskUseType.UNLIMITED, alias="useType")
    frequency: TaskFrequency | None = Field(default=None, description="Recurrence, None for no fixed frequency")
    completed: bool = Field(default=False, description="Completion flag")
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt", description="Creation timestamp (ISO)")
