"""Admin API: sheet registration and manual triggers."""

import logging
import secrets
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status

from task_follower.core.bootstrap import Services, get_services
from task_follower.core.config import constants, settings
from task_follower.core.errors import RepositoryError
from task_follower.domain.sheet import Sheet, SheetCreate
from task_follower.domain.task import Task
from task_follower.models.service_models import SheetFailure, SweepResult, SyncSummary


logger = logging.getLogger(__name__)


async def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    """Check the X-API-Key header against the configured admin key."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API is not configured")
    if not x_api_key or not secrets.compare_digest(x_api_key, settings.admin_api_key):
        logger.warning("admin_auth_failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_api_key)])


@router.post("/sheets", status_code=status.HTTP_201_CREATED)
async def register_sheet(payload: SheetCreate, services: Services = Depends(get_services)) -> Sheet:
    return await services.registry.register(payload.sheet_id, payload.name)


@router.delete("/sheets/{sheet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_sheet(sheet_id: str, services: Services = Depends(get_services)) -> Response:
    """Unregister a sheet; its mirrored tasks are deleted with it."""
    if not await services.registry.remove(sheet_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sheet not found")
    services.driver.queue.discard(sheet_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sheets/reconcile")
async def reconcile_all_sheets(services: Services = Depends(get_services)) -> SyncSummary:
    return await services.driver.reconcile_all()


@router.post("/sheets/{sheet_id}/reconcile")
async def reconcile_sheet(sheet_id: str, services: Services = Depends(get_services)) -> SyncSummary:
    try:
        sheet = await services.registry.get_sheet(sheet_id)
    except RepositoryError as e:
        logger.error("Registry lookup failed", extra={"sheet_id": sheet_id, "error": str(e)})
        return SyncSummary(failed=1, failures=[SheetFailure(sheet_id=sheet_id, error=str(e))])
    if sheet is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sheet not found")
    return await services.driver.reconcile_sheet(sheet_id)


@router.post("/escalations/sweep")
async def run_escalation_sweep(services: Services = Depends(get_services)) -> SweepResult:
    return await services.driver.run_escalation_sweep()


@router.post("/tasks/{task_id}/unblock")
async def unblock_task(task_id: str, services: Services = Depends(get_services)) -> Task:
    task = await services.repository.unblock(task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


@router.get("/tasks/attention")
async def list_attention_tasks(services: Services = Depends(get_services)) -> dict[str, list[Task]]:
    """Overdue, due-soon and blocked tasks across all sheets."""
    now = datetime.now(UTC)
    try:
        return {
            "overdue": await services.repository.list_overdue(now),
            "due_soon": await services.repository.list_due_soon(now, constants.DUE_SOON_DAYS),
            "blocked": await services.repository.list_blocked(),
        }
    except RepositoryError as e:
        logger.error("Attention listing failed", extra={"error": str(e)})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Task store unavailable") from e
