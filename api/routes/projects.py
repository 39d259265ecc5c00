"""Project routes — projects, team members, metrics dashboard"""
import logging
from datetime import datetime, timedelta
from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from api.deps import get_app_settings, get_db, get_sender
from api.routes.auth import get_current_telegram_id
from bot.config import Settings
from bot.db.models import Project, User
from bot.services.due_dates import parse_timestamp
from bot.services.errors import OrderValidationError
from bot.services.history_service import fetch_history_for_orders
from bot.services.metrics import MetricsReport, MetricsWindow, compute_project_metrics
from bot.services.notification_service import deliver
from bot.services.order_service import (
    add_project_member, check_project_access, count_project_members,
    create_project, list_project_orders, list_projects,
)
from bot.services.records import NotificationIntent, format_user_name
from bot.services.reminder_log_service import load_reminder_logs
from bot.utils.deep_links import project_path
from bot.utils.formatters import new_member_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectOut(BaseModel):
    id: str
    title: str
    description: str | None
    color: str | None
    user_telegram_id: int
    archived: bool
    created_at: datetime | None

    class Config:
        from_attributes = True


class MemberOut(BaseModel):
    telegram_id: int
    name: str
    role: str
    avatar_url: str | None


def member_display_name(user: User) -> str:
    return (
        format_user_name(user.first_name, user.last_name, None)
        or (f"@{user.username}" if user.username else None)
        or f"ID: {user.telegram_id}"
    )


def member_joined_notification(project: Project, user: User, role: str) -> NotificationIntent:
    return NotificationIntent(
        recipient_id=project.user_telegram_id,
        text=new_member_message(project.title, member_display_name(user), role),
        url_path=project_path(project.id),
        button_text="Перейти в проект",
    )


def parse_window(start: str | None, end: str | None) -> MetricsWindow:
    bounds = {}
    for name, raw in (("from", start), ("to", end)):
        if raw is None or not raw.strip():
            bounds[name] = None
            continue
        bounds[name] = parse_timestamp(raw)
        if bounds[name] is None:
            raise OrderValidationError(f"Invalid '{name}' date")
    if bounds["from"] and bounds["to"] and bounds["from"] > bounds["to"]:
        raise OrderValidationError("'from' must not be later than 'to'")
    return MetricsWindow(start=bounds["from"], end=bounds["to"])


@router.post("", response_model=ProjectOut)
async def create_project_route(
    payload: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    color = payload.get("color")
    description = payload.get("description")
    project = await create_project(
        db, telegram_id, payload.get("title"),
        description=description if isinstance(description, str) else None,
        color=color if isinstance(color, str) else None,
    )
    await db.commit()
    await db.refresh(project)
    return ProjectOut.model_validate(project)


@router.get("", response_model=list[ProjectOut])
async def get_projects(
    db: AsyncSession = Depends(get_db),
    telegram_id: int = Depends(get_current_telegram_id),
):
    projects = await list_projects(db, telegram_id)
    return [ProjectOut.model_validate(p) for p in projects]


@router.post("/{project_id}/members", response_model=MemberOut)
async def add_member(
    project_id: str,
    payload: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    sender=Depends(get_sender),
    telegram_id: int = Depends(get_current_telegram_id),
):
    member_id = payload.get("member_telegram_id")
    if not isinstance(member_id, int) or isinstance(member_id, bool):
        raise OrderValidationError("member_telegram_id is required and must be a number")
    role = payload.get("role")

    project, member, user = await add_project_member(
        db, project_id, telegram_id, member_id, role if isinstance(role, str) else None,
    )
    await db.commit()

    if sender:
        try:
            await deliver(sender, [member_joined_notification(project, user, member.role)])
        except Exception:
            logger.exception(f"Failed to notify owner of project {project_id}")

    return MemberOut(
        telegram_id=user.telegram_id,
        name=format_user_name(user.first_name, user.last_name, None) or "Без имени",
        role=member.role,
        avatar_url=user.photo_url,
    )


@router.get("/{project_id}/metrics", response_model=MetricsReport)
async def get_project_metrics(
    project_id: str,
    start: str | None = Query(None, alias="from"),
    end: str | None = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    telegram_id: int = Depends(get_current_telegram_id),
):
    window = parse_window(start, end)
    project = await check_project_access(db, project_id, telegram_id)

    orders = await list_project_orders(db, project_id)
    order_ids = [o.id for o in orders]
    history = await fetch_history_for_orders(db, order_ids)
    reminder_log = await load_reminder_logs(db, order_ids)
    members_count = await count_project_members(db, project)

    return compute_project_metrics(
        orders, history, reminder_log,
        window=window,
        members_count=members_count,
        due_soon_window=timedelta(hours=settings.due_soon_hours),
    )
