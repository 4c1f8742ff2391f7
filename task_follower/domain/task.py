"""Task domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(StrEnum):
    """Closed status set; raw sheet labels are parsed into it once at the boundary."""

    OPEN = "open"
    COMPLETED = "completed"
    BLOCKED = "blocked"

    @classmethod
    def from_label(cls, label: str | None) -> "TaskStatus":
        """Parse a free-text status cell. Anything unrecognized is OPEN."""
        normalized = (label or "").strip().lower()
        if normalized == cls.COMPLETED:
            return cls.COMPLETED
        if normalized == cls.BLOCKED:
            return cls.BLOCKED
        return cls.OPEN


class DeltaKind(StrEnum):
    """Why a freshly read row needs attention compared to its stored mirror."""

    NEW = "new"
    UNCHANGED = "unchanged"
    OWNER_CHANGED = "owner_changed"
    DUE_DATE_CHANGED = "due_date_changed"
    MISSING_DATA = "missing_data"


class SendKind(StrEnum):
    """Owner-facing notification chosen for one reconciliation pass."""

    NONE = "none"
    NEW = "new"
    REMINDER = "reminder"
    LATE = "late"
    UPDATED = "updated"


class TaskKey(BaseModel):
    """Composite identity of a task: (sheet, project tab, row position).

    The row number is the position within the project tab for the current
    read. Rows reordered in the sheet are matched purely by position.
    """

    model_config = ConfigDict(frozen=True)

    sheet_id: str
    project: str
    row_number: int

    def __str__(self) -> str:
        return f"{self.sheet_id}/{self.project}#{self.row_number}"


class Task(BaseModel):
    """Mirror of one task row."""

    id: str | None = Field(default=None, description="Surrogate id assigned on first insert")
    sheet_id: str = Field(..., description="Spreadsheet id")
    project: str = Field(..., description="Project tab name")
    row_number: int = Field(..., description="1-based position within the project tab")

    description: str = Field(default="", description="What has to be done")
    priority: str = Field(default="", description="Priority label")
    points: str = Field(default="", description="Effort / points label")
    status: TaskStatus = Field(default=TaskStatus.OPEN, description="Parsed status")
    status_label: str = Field(default="", description="Raw status text from the sheet")
    milestone: str = Field(default="", description="Milestone label")
    notes: str = Field(default="", description="Free-form notes")

    owner_id: str = Field(default="", description="Owner membership number")
    owner_name: str = Field(default="", description="Owner display name as written in the sheet")
    owner_channel: str | None = Field(default=None, description="Owner Telegram chat id")
    manager_id: str = Field(default="", description="Manager membership number")
    manager_name: str = Field(default="", description="Manager display name")
    manager_channel: str | None = Field(default=None, description="Manager Telegram chat id")

    created_at: datetime | None = Field(default=None, description="First time the row was mirrored")
    updated_at: datetime | None = Field(default=None, description="Last reconciliation pass")
    start_date: datetime | None = Field(default=None, description="Parsed start date")
    due_date: datetime | None = Field(default=None, description="Parsed due date")
    completed_at: datetime | None = Field(default=None, description="Set once when first seen completed")
    blocked_at: datetime | None = Field(default=None, description="Set once when first seen blocked")
    last_sent: datetime | None = Field(default=None, description="Last owner-facing notification")
    last_reported: datetime | None = Field(default=None, description="Last manager report or escalation")

    @property
    def key(self) -> TaskKey:
        return TaskKey(sheet_id=self.sheet_id, project=self.project, row_number=self.row_number)

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty."""
        missing = []
        if not self.owner_name.strip():
            missing.append("owner")
        if not self.points.strip():
            missing.append("points")
        if not self.description.strip():
            missing.append("description")
        if not self.priority.strip():
            missing.append("priority")
        if self.due_date is None:
            missing.append("due date")
        return missing

    @property
    def has_missing_data(self) -> bool:
        return bool(self.missing_fields())

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED or self.completed_at is not None
