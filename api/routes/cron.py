"""Cron routes — external trigger for the deadline sweeps"""
import hmac
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.deps import get_app_settings, get_db, get_sender
from bot.config import Settings
from bot.services.sweeps import check_overdue_orders, remind_upcoming_orders

router = APIRouter(prefix="/api", tags=["cron"])


async def verify_cron_secret(request: Request, settings: Settings = Depends(get_app_settings)):
    if not settings.cron_secret:
        return
    provided = request.headers.get("X-Cron-Secret", "")
    if not hmac.compare_digest(provided, settings.cron_secret):
        raise HTTPException(401, "Invalid cron secret")


def _require_sender(sender):
    if sender is None:
        raise HTTPException(503, "Bot token is not configured")
    return sender


@router.get("/check-overdue-tasks", dependencies=[Depends(verify_cron_secret)])
async def check_overdue_tasks(db: AsyncSession = Depends(get_db), sender=Depends(get_sender)):
    stats = await check_overdue_orders(db, _require_sender(sender))
    return {"checked": stats["checked"], "overdue": stats["overdue"], "notificationsSent": stats["notificationsSent"]}


@router.post("/remind-upcoming-tasks", dependencies=[Depends(verify_cron_secret)])
async def remind_upcoming_tasks(db: AsyncSession = Depends(get_db), sender=Depends(get_sender)):
    stats = await remind_upcoming_orders(db, _require_sender(sender))
    return {"remindersPlanned": stats["remindersPlanned"], "remindersSent": stats["remindersSent"]}
