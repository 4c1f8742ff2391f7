"""Domain models and DTOs."""

from task_follower.domain.contact import Contact
from task_follower.domain.sheet import Sheet, SheetCreate
from task_follower.domain.task import DeltaKind, SendKind, Task, TaskKey, TaskStatus


__all__ = [
    "Contact",
    "DeltaKind",
    "SendKind",
    "Sheet",
    "SheetCreate",
    "Task",
    "TaskKey",
    "TaskStatus",
]
