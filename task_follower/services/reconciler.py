"""Sheet reconciliation: compare fresh rows against the stored mirror and act on the delta."""

import logging
from collections import Counter
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from task_follower.core.column_mapping import CONTACT_ROW_SCHEMA, TASK_ROW_SCHEMA, match_name
from task_follower.core.config import constants
from task_follower.core.dates import parse_sheet_date, same_instant
from task_follower.core.directory_cache import DirectoryCache
from task_follower.core.errors import RepositoryError
from task_follower.core.logging import log_with_task_context, span
from task_follower.core.ports import SourceReader, TaskRepository
from task_follower.domain.contact import Contact
from task_follower.domain.task import DeltaKind, SendKind, Task, TaskStatus
from task_follower.models.service_models import ReconcileOutcome
from task_follower.services.escalation_service import EscalationService
from task_follower.services.notification_service import NotificationDispatcher


logger = logging.getLogger(__name__)


def classify_delta(candidate: Task, stored: Task | None) -> DeltaKind:
    """Classify why a candidate needs attention compared to its stored mirror.

    Order: missing data, new, owner changed, due date changed, unchanged.
    Due dates are compared as instants, never as strings.
    """
    if candidate.has_missing_data:
        return DeltaKind.MISSING_DATA
    if stored is None:
        return DeltaKind.NEW
    if _owner_changed(candidate, stored):
        return DeltaKind.OWNER_CHANGED
    if not same_instant(candidate.due_date, stored.due_date):
        return DeltaKind.DUE_DATE_CHANGED
    return DeltaKind.UNCHANGED


def _owner_changed(candidate: Task, stored: Task) -> bool:
    if candidate.owner_id != stored.owner_id:
        return True
    # Two owners missing from the roster share the placeholder id; tell them apart by name
    if candidate.owner_id == constants.UNKNOWN_PERSON_ID:
        return candidate.owner_name.strip().lower() != stored.owner_name.strip().lower()
    return False


class Reconciler:
    """Mirrors one sheet into the task repository and drives notifications.

    Row numbers are positions within a project tab for the current read.
    Reordering rows in the sheet therefore re-pairs them with whatever was
    stored at the same position.
    """

    def __init__(
        self,
        reader: SourceReader,
        repository: TaskRepository,
        directory: DirectoryCache,
        dispatcher: NotificationDispatcher,
        escalation: EscalationService,
        *,
        tz: ZoneInfo,
        contacts_tab: str,
        day_first: bool = False,
    ) -> None:
        self._reader = reader
        self._repository = repository
        self._directory = directory
        self._dispatcher = dispatcher
        self._escalation = escalation
        self._tz = tz
        self._contacts_tab = contacts_tab
        self._day_first = day_first

    async def reconcile(self, sheet_id: str, now: datetime | None = None) -> ReconcileOutcome:
        """Reconcile every project tab of a sheet.

        Unreadable tabs and failing rows are logged, counted and skipped.

        Args:
            sheet_id: Spreadsheet to reconcile
            now: Current instant (defaults to the wall clock)

        Returns:
            ReconcileOutcome with per-sheet counts

        Raises:
            SourceReadError: If the sheet's tab list cannot be read
        """
        now = now or datetime.now(UTC)
        with span("reconciler.reconcile"):
            roster = await self._load_roster(sheet_id)
            tabs = await self._reader.list_project_tabs(sheet_id)

            outcome = ReconcileOutcome(sheet_id=sheet_id)
            deltas: Counter[DeltaKind] = Counter()

            for tab in tabs:
                try:
                    rows = await self._reader.read_rows(sheet_id, tab)
                except Exception as e:
                    logger.warning(
                        "Skipping unreadable tab",
                        extra={"sheet_id": sheet_id, "tab": tab, "error": str(e)},
                    )
                    outcome.failed_tabs.append(tab)
                    continue

                records = [record for record in TASK_ROW_SCHEMA.map_rows(rows) if record is not None]
                if not records:
                    continue
                outcome.projects += 1

                # The first row's owner manages the project unless a row names its manager
                default_manager = records[0]["owner"]

                for row_number, record in enumerate(records, start=1):
                    outcome.rows += 1
                    try:
                        delta = await self._reconcile_row(
                            sheet_id=sheet_id,
                            project=tab,
                            row_number=row_number,
                            record=record,
                            roster=roster,
                            default_manager=default_manager,
                            now=now,
                            outcome=outcome,
                        )
                        deltas[delta] += 1
                    except Exception as e:
                        outcome.failed_rows += 1
                        log_with_task_context(
                            logger,
                            "error",
                            "Row reconciliation failed",
                            sheet_id=sheet_id,
                            project=tab,
                            row_number=row_number,
                            error=str(e),
                        )

            outcome.deltas = dict(deltas)
            logger.info(
                "Sheet reconciled",
                extra={
                    "sheet_id": sheet_id,
                    "projects": outcome.projects,
                    "rows": outcome.rows,
                    "tasks_created": outcome.created,
                    "notifications": outcome.notifications,
                    "failed_rows": outcome.failed_rows,
                    "failed_tabs": len(outcome.failed_tabs),
                },
            )
            return outcome

    async def _load_roster(self, sheet_id: str) -> list[Contact]:
        """Read the sheet's contacts tab; an unreadable roster is treated as empty."""
        try:
            rows = await self._reader.read_rows(sheet_id, self._contacts_tab)
        except Exception as e:
            logger.warning(
                "Contacts tab unreadable, continuing without roster",
                extra={"sheet_id": sheet_id, "error": str(e)},
            )
            return []

        roster = [
            Contact(
                person_id=record["number"] or constants.UNKNOWN_PERSON_ID,
                name=record["name"],
                email=record["email"] or None,
                phone=record["phone"] or None,
            )
            for record in CONTACT_ROW_SCHEMA.map_rows(rows)
            if record is not None and record["name"]
        ]
        if not roster:
            logger.warning("No contacts found in sheet", extra={"sheet_id": sheet_id})
        return roster

    async def _resolve_person(self, roster: list[Contact], name: str) -> tuple[str, str | None]:
        """Match a written name to the roster, then to a Telegram chat id.

        Returns:
            (person id, chat id); the placeholder id when the roster has no match
        """
        index = match_name([contact.name for contact in roster], name)
        if index is None:
            return constants.UNKNOWN_PERSON_ID, None

        person_id = roster[index].person_id
        if person_id == constants.UNKNOWN_PERSON_ID:
            return person_id, None
        contact = await self._directory.resolve(person_id)
        return person_id, contact.channel_address if contact else None

    async def build_candidate(
        self,
        *,
        sheet_id: str,
        project: str,
        row_number: int,
        record: dict[str, str],
        roster: list[Contact],
        default_manager: str,
    ) -> Task:
        """Turn a mapped row into a Task with resolved people and parsed dates."""
        owner_name = record["owner"]
        manager_name = record["manager"] or default_manager
        owner_id, owner_channel = await self._resolve_person(roster, owner_name)
        manager_id, manager_channel = await self._resolve_person(roster, manager_name)

        return Task(
            sheet_id=sheet_id,
            project=project,
            row_number=row_number,
            description=record["description"],
            priority=record["priority"],
            points=record["points"],
            status=TaskStatus.from_label(record["status"]),
            status_label=record["status"],
            milestone=record["milestone"],
            notes=record["notes"],
            owner_id=owner_id,
            owner_name=owner_name,
            owner_channel=owner_channel,
            manager_id=manager_id,
            manager_name=manager_name,
            manager_channel=manager_channel,
            start_date=parse_sheet_date(record["start_date"], tz=self._tz, day_first=self._day_first),
            due_date=parse_sheet_date(record["due_date"], tz=self._tz, day_first=self._day_first),
        )

    async def _reconcile_row(
        self,
        *,
        sheet_id: str,
        project: str,
        row_number: int,
        record: dict[str, str],
        roster: list[Contact],
        default_manager: str,
        now: datetime,
        outcome: ReconcileOutcome,
    ) -> DeltaKind:
        candidate = await self.build_candidate(
            sheet_id=sheet_id,
            project=project,
            row_number=row_number,
            record=record,
            roster=roster,
            default_manager=default_manager,
        )
        stored = await self._repository.find_by_key(candidate.key)
        delta = classify_delta(candidate, stored)

        # Stamps set once; later passes keep the stored values
        completed_at = stored.completed_at if stored else None
        if completed_at is None and candidate.status is TaskStatus.COMPLETED:
            completed_at = now
        blocked_at = stored.blocked_at if stored else None
        if blocked_at is None and candidate.status is TaskStatus.BLOCKED:
            blocked_at = now

        candidate = candidate.model_copy(
            update={
                "id": stored.id if stored else None,
                "created_at": stored.created_at if stored and stored.created_at else now,
                "updated_at": now,
                "completed_at": completed_at,
                "blocked_at": blocked_at,
                "last_sent": stored.last_sent if stored else None,
                "last_reported": stored.last_reported if stored else None,
            }
        )

        result = await self._dispatcher.dispatch(candidate, delta, stored, now)
        stamps = {}
        if result.last_sent is not None:
            stamps["last_sent"] = result.last_sent
            outcome.notifications += 1
        if result.last_reported is not None:
            stamps["last_reported"] = result.last_reported
            outcome.missing_data_reports += 1
        if stamps:
            candidate = candidate.model_copy(update=stamps)

        try:
            saved = await self._repository.upsert(candidate)
        except RepositoryError as e:
            outcome.failed_rows += 1
            log_with_task_context(
                logger,
                "error",
                "Task write failed, next pass recomputes from the stored copy",
                sheet_id=sheet_id,
                project=project,
                row_number=row_number,
                error=str(e),
            )
            return delta

        if stored is None:
            outcome.created += 1
        else:
            outcome.updated += 1

        if result.decision.send is SendKind.LATE and self._escalation.is_delayed(saved, now):
            escalation = await self._escalation.escalate_if_due(saved, now)
            if escalation is not None and escalation.success:
                outcome.escalations += 1

        return delta
