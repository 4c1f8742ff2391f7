"""Wiring of the concrete collaborators into the services."""

import logging
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from fastapi import Request

from task_follower.core.admin_notifier import AdminNotifier
from task_follower.core.config import Settings
from task_follower.core.directory_cache import DirectoryCache
from task_follower.core.ports import MessagingGateway, TaskRepository
from task_follower.core.scheduler_tracker import JobTracker
from task_follower.interface.identity_directory import SheetIdentityDirectory
from task_follower.interface.sheets_reader import GoogleSheetsReader
from task_follower.interface.telegram_sender import TelegramGateway
from task_follower.services.escalation_service import EscalationService
from task_follower.services.notification_service import NotificationDispatcher
from task_follower.services.reconciler import Reconciler
from task_follower.services.sheet_registry import SqliteSheetRegistry
from task_follower.services.sync_driver import SyncDriver
from task_follower.services.task_repository import SqliteTaskRepository


logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the HTTP surface and the scheduler need."""

    repository: TaskRepository
    registry: SqliteSheetRegistry
    directory: DirectoryCache
    escalation: EscalationService
    driver: SyncDriver
    tracker: JobTracker
    gateway: MessagingGateway


def build_services(settings: Settings) -> Services:
    """Construct the service graph from settings.

    Raises:
        ValueError: If a required credential is missing
    """
    tz = ZoneInfo(settings.timezone)
    bot_token = settings.require_credential("telegram_bot_token", "Telegram bot")
    api_key = settings.require_credential("google_api_key", "Google Sheets API")
    members_sheet_id = settings.require_credential("members_sheet_id", "Member directory sheet")

    gateway = TelegramGateway(bot_token=bot_token, base_url=settings.telegram_api_base_url)
    reader = GoogleSheetsReader(api_key=api_key, base_url=settings.sheets_api_base_url)
    directory = DirectoryCache(
        SheetIdentityDirectory(reader, sheet_id=members_sheet_id, tab=settings.members_tab),
        ttl_seconds=settings.directory_cache_ttl_seconds,
    )

    repository = SqliteTaskRepository(db_path=settings.database_path)
    registry = SqliteSheetRegistry(db_path=settings.database_path)
    notifier = AdminNotifier(
        gateway,
        settings.admin_chat_ids,
        enabled=settings.enable_admin_notifications,
        cooldown_minutes=settings.admin_notification_cooldown_minutes,
    )

    escalation = EscalationService(
        repository,
        gateway,
        tz=tz,
        threshold_days=settings.escalation_threshold_days,
        batch_size=settings.escalation_batch_size,
        batch_delay_seconds=settings.escalation_batch_delay_seconds,
    )
    reconciler = Reconciler(
        reader,
        repository,
        directory,
        NotificationDispatcher(gateway, tz=tz),
        escalation,
        tz=tz,
        contacts_tab=settings.contacts_tab,
        day_first=settings.date_day_first,
    )
    driver = SyncDriver(
        reconciler,
        escalation,
        registry,
        repository,
        notifier,
        tz=tz,
        work_hours_start=settings.work_hours_start,
        work_hours_end=settings.work_hours_end,
        max_sheets_per_tick=settings.max_sheets_per_tick,
        tick_budget_seconds=settings.tick_budget_seconds,
    )

    logger.info("Services constructed", extra={"timezone": settings.timezone})
    return Services(
        repository=repository,
        registry=registry,
        directory=directory,
        escalation=escalation,
        driver=driver,
        tracker=JobTracker(notifier),
        gateway=gateway,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the services attached at startup."""
    return request.app.state.services
