"""Pydantic models for service layer return types.

These models give the reconciler, dispatcher, escalation service and
driver typed summaries at their boundaries.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from task_follower.domain.task import DeltaKind, SendKind


class Decision(BaseModel):
    """Outcome of the notification rules for one candidate."""

    send: SendKind = SendKind.NONE
    report_missing_data: bool = False
    reason: str = ""


class DispatchResult(BaseModel):
    """What the dispatcher actually did for one candidate."""

    decision: Decision
    delivered: bool = False
    delivery_error: str | None = None
    last_sent: datetime | None = None
    last_reported: datetime | None = None


class ReconcileOutcome(BaseModel):
    """Summary of one sheet reconciliation."""

    sheet_id: str
    projects: int = 0
    rows: int = 0
    created: int = 0
    updated: int = 0
    notifications: int = 0
    missing_data_reports: int = 0
    escalations: int = 0
    failed_rows: int = 0
    failed_tabs: list[str] = Field(default_factory=list)
    deltas: dict[DeltaKind, int] = Field(default_factory=dict)


class EscalationResult(BaseModel):
    """Result of notifying a task's project peers."""

    task_id: str
    success: bool
    notified: int = 0
    failed: int = 0
    error: str | None = None


class SweepResult(BaseModel):
    """Result of the batch escalation sweep."""

    success: bool = True
    candidates: int = 0
    processed: int = 0
    skipped_today: int = 0
    total_notifications: int = 0
    error: str | None = None


class ActionOutcome(BaseModel):
    """Reply to an inbound "send shame" action."""

    success: bool
    message: str
    owner_notified: bool = False


class SheetFailure(BaseModel):
    sheet_id: str
    error: str


class SyncSummary(BaseModel):
    """Result of a sync run over one or more sheets."""

    processed: int = 0
    failed: int = 0
    remaining: int = 0
    skipped: bool = False
    reason: str = ""
    outcomes: list[ReconcileOutcome] = Field(default_factory=list)
    failures: list[SheetFailure] = Field(default_factory=list)


class AttentionReport(BaseModel):
    """Counts behind the daily attention report."""

    overdue: int = 0
    due_soon: int = 0
    blocked: int = 0
    sent_to: int = 0


class TickResult(BaseModel):
    """Result of one timer invocation."""

    schedule_id: str
    action: str
    success: bool = True
    error: str | None = None
    sync: SyncSummary | None = None
    sweep: SweepResult | None = None
    report: AttentionReport | None = None
