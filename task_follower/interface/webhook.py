"""Telegram webhook endpoint for escalation button presses."""

import logging
import secrets
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from task_follower.core.bootstrap import Services, get_services
from task_follower.core.config import settings
from task_follower.core.errors import DeliveryError
from task_follower.services.escalation_service import parse_action_payload


router = APIRouter(prefix="/webhook", tags=["webhook"])
logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def verify_webhook_secret(request: Request) -> None:
    """Reject updates that do not carry the configured secret token."""
    expected = settings.telegram_webhook_secret
    if not expected:
        return
    provided = request.headers.get(SECRET_HEADER, "")
    if not secrets.compare_digest(provided, expected):
        logger.warning("Webhook secret mismatch", extra={"path": request.url.path})
        raise HTTPException(status_code=403, detail="Invalid webhook secret")


@router.post("/telegram", dependencies=[Depends(verify_webhook_secret)])
async def receive_telegram_update(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Receive a Telegram update and hand button presses to a background task.

    Only callback queries are handled; every other update type is
    acknowledged and ignored.

    Raises:
        HTTPException: If the payload is not valid JSON
    """
    try:
        payload = await request.json()
    except Exception as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    callback = payload.get("callback_query") if isinstance(payload, dict) else None
    if not callback:
        return {"status": "ignored"}

    background_tasks.add_task(handle_callback_query, services, callback)
    return {"status": "received"}


async def handle_callback_query(services: Services, callback: dict[str, Any]) -> None:
    """Run the escalation action and answer the button press."""
    callback_id = str(callback.get("id", ""))
    task_id = parse_action_payload(str(callback.get("data") or ""))
    if task_id is None:
        logger.info("Ignoring unknown callback data", extra={"callback_id": callback_id})
        return

    actor_channel = str((callback.get("from") or {}).get("id", ""))
    actor = await services.directory.find_by_channel(actor_channel) if actor_channel else None

    outcome = await services.escalation.handle_action(
        task_id,
        actor.person_id if actor else None,
        actor_channel or None,
    )
    logger.info(
        "Escalation action handled",
        extra={"task_id": task_id, "success": outcome.success, "owner_notified": outcome.owner_notified},
    )

    try:
        await services.gateway.answer_action(callback_id, outcome.message)
    except DeliveryError as e:
        logger.warning("Failed to answer callback query", extra={"callback_id": callback_id, "error": str(e)})
