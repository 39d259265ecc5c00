"""Order routes — create, read, update through the lifecycle engine"""
import logging
from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from api.deps import get_db, get_sender
from api.routes.auth import get_current_telegram_id
from bot.services.errors import OrderValidationError
from bot.services.history_service import fetch_order_history
from bot.services.lifecycle import OrderPatch, apply_order_update, build_review_patch
from bot.services.notification_service import deliver
from bot.services.order_service import (
    check_project_access, create_order, get_accessible_order,
    get_user_display_name, list_archived_orders, list_orders, save_order_update,
)
from bot.services.records import HistoryRecord, OrderRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

# Set only through dedicated flows, never on creation
_CREATE_EXCLUDED = {"status", "archived", "review_comment", "review_images", "review_answer"}


class SubmitReviewRequest(BaseModel):
    comment: str = ""
    images: list = []


async def _update_order(db: AsyncSession, sender, order_id: str, patch: OrderPatch, telegram_id: int) -> OrderRecord:
    order = await get_accessible_order(db, order_id, telegram_id)
    actor_name = await get_user_display_name(db, telegram_id)
    result = apply_order_update(OrderRecord.model_validate(order), patch, telegram_id, actor_name)

    await save_order_update(db, order, result, patch.changes.keys())
    await db.commit()
    await db.refresh(order)

    # Delivery happens after commit; a failed send does not undo the update
    if sender and result.notifications:
        try:
            await deliver(sender, result.notifications)
        except Exception:
            logger.exception(f"Failed to deliver notifications for order {order_id}")

    return OrderRecord.model_validate(order)


@router.post("", response_model=OrderRecord)
async def create_order_route(
    payload: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    project_id = payload.get("project_id")
    if not isinstance(project_id, str) or not project_id.strip():
        raise OrderValidationError("project_id is required")
    for field in ("title", "client_name", "client_phone"):
        if field not in payload:
            raise OrderValidationError(f"{field} is required")

    await check_project_access(db, project_id, telegram_id)

    fields = {k: v for k, v in payload.items() if k in OrderPatch.model_fields and k not in _CREATE_EXCLUDED}
    patch = OrderPatch.parse(fields)
    changes = patch.changes

    order = await create_order(
        db, project_id, telegram_id,
        title=changes.pop("title"),
        client_name=changes.pop("client_name"),
        client_phone=changes.pop("client_phone"),
        code=payload.get("code") if isinstance(payload.get("code"), str) else None,
        **changes,
    )
    await db.commit()
    await db.refresh(order)
    return OrderRecord.model_validate(order)


@router.get("", response_model=list[OrderRecord])
async def get_orders(
    project_id: str | None = None,
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    orders = await list_orders(db, telegram_id, project_id)
    return [OrderRecord.model_validate(o) for o in orders]


@router.get("/archived", response_model=list[OrderRecord])
async def get_archived_orders(
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    orders = await list_archived_orders(db, telegram_id)
    return [OrderRecord.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderRecord)
async def get_order_route(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    order = await get_accessible_order(db, order_id, telegram_id)
    return OrderRecord.model_validate(order)


@router.put("/{order_id}", response_model=OrderRecord)
async def update_order_route(
    order_id: str,
    payload: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    sender=Depends(get_sender),
    telegram_id: int = Depends(get_current_telegram_id),
):
    patch = OrderPatch.parse(payload)
    return await _update_order(db, sender, order_id, patch, telegram_id)


@router.get("/{order_id}/history", response_model=list[HistoryRecord])
async def get_order_history(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    await get_accessible_order(db, order_id, telegram_id)
    return await fetch_order_history(db, order_id)


@router.post("/{order_id}/submit-review", response_model=OrderRecord)
async def submit_review(
    order_id: str,
    req: SubmitReviewRequest,
    db: AsyncSession = Depends(get_db),
    sender=Depends(get_sender),
    telegram_id: int = Depends(get_current_telegram_id),
):
    patch = build_review_patch(req.comment, req.images)
    return await _update_order(db, sender, order_id, patch, telegram_id)
