"""
LINE webhook - POST /v1/webhooks/line

Only postback ACCEPT_JOB events change state. Every request with a valid
signature gets a 200 so the platform stops retrying; an event that fails
is reported in `handled` with outcome "error" and the rest still run.
"""
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from govcar.config import get_settings
from govcar.database import get_db, transaction
from govcar.exceptions import DispatchError
from govcar.repositories.driver_repo import DriverRepository
from govcar.services.assignment import AssignmentService
from govcar.services.line import verify_signature
from govcar.services.notifier import Notifier, get_notifier

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/v1/webhooks", tags=["Webhooks"])


def _parse_postback(event: dict) -> dict | None:
    raw = (event.get("postback") or {}).get("data")
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring non-JSON postback data: %r", raw)
        return None
    return data if isinstance(data, dict) else None


@router.post("/line")
async def line_webhook(
    request: Request,
    x_line_signature: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    body = await request.body()
    if not verify_signature(body, x_line_signature, settings.line_channel_secret):
        logger.warning("LINE webhook rejected: bad signature")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        events = json.loads(body).get("events") or []
    except (ValueError, AttributeError):
        logger.warning("LINE webhook body is not a JSON object")
        return {"ok": True}

    service = AssignmentService(db, notifier)
    drivers = DriverRepository(db)
    outcomes = []

    for event in events:
        if event.get("type") != "postback":
            continue
        data = _parse_postback(event)
        if not data or data.get("type") != "ACCEPT_JOB" or not data.get("booking_id"):
            continue

        user_id = (event.get("source") or {}).get("userId")
        booking_id = str(data["booking_id"])
        try:
            async with transaction(db):
                driver = await drivers.get_by_chat_channel(user_id) if user_id else None
            if driver is None:
                logger.warning("ACCEPT_JOB from unlinked LINE user=%s ignored", user_id)
                continue
            result = await service.accept_job(booking_id, driver.id)
        except DispatchError as exc:
            # one bad event must not drop the rest of the batch
            logger.error("ACCEPT_JOB for booking=%s failed: %s", booking_id, exc.detail)
            outcomes.append({"booking_id": booking_id, "outcome": "error", "error": exc.code})
            continue
        outcomes.append({"booking_id": result.booking_id, "outcome": result.outcome.value})

    return {"ok": True, "handled": outcomes}
