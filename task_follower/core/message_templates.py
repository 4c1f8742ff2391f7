"""Centralized message templates for Telegram notifications.

All user-facing strings live here. Messages are sent with HTML parse mode,
so every value taken from a sheet goes through html.escape.
"""

from html import escape
from zoneinfo import ZoneInfo

from task_follower.core.dates import format_day
from task_follower.domain.task import Task


SHEET_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/edit"


def _sheet_link(task: Task) -> str:
    return f'<a href="{SHEET_URL.format(sheet_id=escape(task.sheet_id))}">Open tracking sheet</a>'


def _task_body(task: Task, tz: ZoneInfo, *, due_label: str = "Due") -> str:
    manager = escape(task.manager_name or "not set")
    return (
        f"\U0001f4cb <b>Task:</b> {escape(task.description)}\n"
        f"⚡ <b>Priority:</b> {escape(task.priority)}\n"
        f"\U0001f4c5 <b>{due_label}:</b> {format_day(task.due_date, tz)}\n\n"
        f"\U0001f4dd <b>Notes:</b> {escape(task.notes or 'none')}\n\n"
        f"\U0001f3d7 <b>Project:</b> {escape(task.project)}\n"
        f"\U0001f468‍\U0001f4bc <b>Project manager:</b> {manager}\n\n"
        f"\U0001f517 {_sheet_link(task)}"
    )


def new_task(task: Task, tz: ZoneInfo) -> str:
    return f"\U0001f195 <b>New task</b>\n\n{_task_body(task, tz)}"


def task_reminder(task: Task, tz: ZoneInfo) -> str:
    return f"⏰ <b>Task reminder</b>\n\n{_task_body(task, tz)}"


def late_task(task: Task, tz: ZoneInfo) -> str:
    return (
        f"\U0001f6a8 <b>Late task</b>\n\n{_task_body(task, tz, due_label='Was due')}\n\n"
        f"⚠️ Please get in touch with your project manager as soon as possible."
    )


def updated_due_date(task: Task, previous: Task | None, tz: ZoneInfo) -> str:
    previous_due = format_day(previous.due_date if previous else None, tz)
    return (
        f"\U0001f4c5 <b>Due date updated</b>\n\n"
        f"<b>Previous due date:</b> {previous_due}\n\n"
        f"{_task_body(task, tz, due_label='New due date')}"
    )


def missing_data(task: Task, missing_fields: list[str]) -> str:
    field_list = "\n".join(f"• {escape(field)}" for field in missing_fields)
    return (
        f"⚠️ <b>Task row is missing data</b>\n\n"
        f"\U0001f3d7 <b>Project:</b> {escape(task.project)}\n"
        f"\U0001f4cd <b>Row:</b> {task.row_number}\n\n"
        f"❌ <b>Missing:</b>\n{field_list}\n\n"
        f"\U0001f4dd <b>Task:</b> {escape(task.description or 'not set')}\n"
        f"\U0001f464 <b>Owner:</b> {escape(task.owner_name or 'not set')}\n\n"
        f"\U0001f517 {_sheet_link(task)}\n\n"
        f"Please complete the missing fields in the sheet."
    )


def delivery_failed(*, task: Task, recipient_name: str, reason: str) -> str:
    return (
        f"\U0001f4ed <b>Could not notify a teammate</b>\n\n"
        f"A message to <b>{escape(recipient_name)}</b> about "
        f"“{escape(task.description)}” ({escape(task.project)}) failed: {escape(reason)}."
    )


def escalation_request(task: Task, days_overdue: int) -> str:
    day_word = "day" if days_overdue == 1 else "days"
    return (
        f"\U0001fae3 <b>A teammate has a late task</b>\n\n"
        f"\U0001f3d7 <b>Project:</b> {escape(task.project)}\n"
        f"\U0001f4dd <b>Task:</b> {escape(task.description)}\n"
        f"⏰ <b>Late by:</b> {days_overdue} {day_word}\n"
        f"⚡ <b>Priority:</b> {escape(task.priority)}\n\n"
        f"You can nudge them with the button below \U0001f447"
    )


ESCALATION_BUTTON_LABEL = "\U0001f624 Send “Shame on you!”"


def shame_message(task: Task) -> str:
    return (
        f"\U0001f624 <b>Shame on you!</b>\n\n"
        f"A teammate nudged you about your late task:\n\n"
        f"\U0001f3d7 <b>Project:</b> {escape(task.project)}\n"
        f"\U0001f4dd <b>Task:</b> {escape(task.description)}\n\n"
        f"⏰ Time to get it done!"
    )


ACTION_SENT = "✅ Your “Shame on you!” was delivered."
ACTION_TASK_NOT_FOUND = "❌ Task not found."
ACTION_TASK_COMPLETED = "✅ The task is already done, no need to nudge."
ACTION_SELF = "\U0001f605 You can't shame yourself!"
ACTION_OWNER_UNREACHABLE = "❌ The task owner has no registered Telegram account."
ACTION_SEND_FAILED = "❌ The message could not be delivered."
ACTION_ERROR = "❌ Something went wrong while handling your request."


def attention_report(*, overdue: list[Task], due_soon: list[Task], blocked: list[Task], tz: ZoneInfo) -> str:
    def _lines(tasks: list[Task], limit: int = 10) -> str:
        lines = [
            f"• {escape(task.project)}: {escape(task.description)} "
            f"({escape(task.owner_name or '?')}, due {format_day(task.due_date, tz)})"
            for task in tasks[:limit]
        ]
        if len(tasks) > limit:
            lines.append(f"… and {len(tasks) - limit} more")
        return "\n".join(lines) if lines else "• none"

    return (
        f"\U0001f4ca <b>Tasks needing attention</b>\n\n"
        f"⏰ <b>Overdue ({len(overdue)}):</b>\n{_lines(overdue)}\n\n"
        f"\U0001f4c6 <b>Due soon ({len(due_soon)}):</b>\n{_lines(due_soon)}\n\n"
        f"⛔ <b>Blocked ({len(blocked)}):</b>\n{_lines(blocked)}"
    )
