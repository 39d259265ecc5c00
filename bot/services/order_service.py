import logging
import secrets
import string
import time
from datetime import datetime, timezone
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from bot.db.models import Order, Project, ProjectMember, User
from bot.services.errors import (
    OrderConflictError, OrderNotFoundError, OrderPermissionError, OrderValidationError,
)
from bot.services.lifecycle import OrderUpdateResult
from bot.services.history_service import add_history_entries
from bot.services.records import OrderRecord, UserRecord
from bot.services.statuses import OrderStatus

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

# Columns the lifecycle engine may change
UPDATABLE_FIELDS = (
    "title", "summary", "description", "status",
    "assignee_telegram_id", "assignee_telegram_name", "assignee_telegram_avatar_url",
    "due_date", "due_time", "delivery_address", "reminder_offset",
    "client_name", "client_phone", "payment_type", "prepayment_amount", "total_amount",
    "review_comment", "review_images", "review_answer", "archived",
)


def _base36(number: int) -> str:
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_order_code() -> str:
    """ORD-<base36 ms timestamp>-<4 random chars>"""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"ORD-{stamp}-{suffix}"


# ─── USERS ───────────────────────────────────────────────

async def get_user(session: AsyncSession, telegram_id: int) -> User | None:
    return await session.get(User, telegram_id)


async def get_user_display_name(session: AsyncSession, telegram_id: int | None) -> str | None:
    if not telegram_id:
        return None
    user = await get_user(session, telegram_id)
    if not user:
        return None
    return UserRecord.model_validate(user).display_name


async def get_time_zones(session: AsyncSession, telegram_ids) -> dict[int, str | None]:
    ids = {telegram_id for telegram_id in telegram_ids if telegram_id}
    if not ids:
        return {}
    result = await session.execute(
        select(User.telegram_id, User.time_zone).where(User.telegram_id.in_(ids))
    )
    return {telegram_id: time_zone for telegram_id, time_zone in result.all()}


async def upsert_user(
    session: AsyncSession,
    telegram_id: int,
    first_name: str | None = None,
    last_name: str | None = None,
    username: str | None = None,
    photo_url: str | None = None,
    time_zone: str | None = None,
) -> User:
    user = await get_user(session, telegram_id)
    if user is None:
        user = User(telegram_id=telegram_id)
        session.add(user)
        logger.info(f"New user {telegram_id} registered")

    user.first_name = first_name
    user.last_name = last_name
    user.username = username
    if photo_url:
        user.photo_url = photo_url
    if time_zone and user.time_zone != time_zone:
        user.time_zone = time_zone
    await session.flush()
    return user


# ─── PROJECTS ────────────────────────────────────────────

async def is_project_member(session: AsyncSession, project_id: str, telegram_id: int) -> bool:
    result = await session.execute(
        select(func.count(ProjectMember.id)).where(
            ProjectMember.project_id == project_id,
            ProjectMember.member_telegram_id == telegram_id,
        )
    )
    return (result.scalar() or 0) > 0


async def check_project_access(session: AsyncSession, project_id: str, telegram_id: int) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise OrderNotFoundError("Project not found")
    if project.user_telegram_id != telegram_id and not await is_project_member(session, project_id, telegram_id):
        raise OrderPermissionError("Access denied to this project")
    return project


async def count_project_members(session: AsyncSession, project: Project) -> int:
    result = await session.execute(
        select(func.count(ProjectMember.id)).where(
            ProjectMember.project_id == project.id,
            ProjectMember.member_telegram_id != project.user_telegram_id,
        )
    )
    return result.scalar() or 0


async def create_project(
    session: AsyncSession,
    owner_telegram_id: int,
    title: str,
    description: str | None = None,
    color: str | None = None,
) -> Project:
    title = title.strip() if isinstance(title, str) else ""
    if not title:
        raise OrderValidationError("Title is required")
    project = Project(
        title=title,
        description=(description or "").strip(),
        color=color or None,
        user_telegram_id=owner_telegram_id,
        archived=False,
    )
    session.add(project)
    await session.flush()
    logger.info(f"Project {project.id} created by {owner_telegram_id}")
    return project


async def list_projects(session: AsyncSession, telegram_id: int) -> list[Project]:
    """Active projects the user owns or is a member of, newest first."""
    member_projects = select(ProjectMember.project_id).where(ProjectMember.member_telegram_id == telegram_id)
    result = await session.execute(
        select(Project)
        .where(
            Project.archived.is_(False),
            (Project.user_telegram_id == telegram_id) | Project.id.in_(member_projects),
        )
        .order_by(Project.created_at.desc())
    )
    return result.scalars().all()


async def add_project_member(
    session: AsyncSession,
    project_id: str,
    actor_telegram_id: int,
    member_telegram_id: int,
    role: str | None = None,
) -> tuple[Project, ProjectMember, User]:
    """The owner adds anyone; other users may only add themselves (invite link)."""
    project = await session.get(Project, project_id)
    if not project:
        raise OrderNotFoundError("Project not found")

    is_self_invitation = actor_telegram_id == member_telegram_id
    if not is_self_invitation and project.user_telegram_id != actor_telegram_id:
        raise OrderPermissionError("Only project owner can add other members")
    if is_self_invitation and project.user_telegram_id == actor_telegram_id:
        raise OrderValidationError("Project owner cannot add themselves as a member")

    user = await get_user(session, member_telegram_id)
    if not user:
        raise OrderNotFoundError("User not found")
    if await is_project_member(session, project_id, member_telegram_id):
        raise OrderConflictError("User is already a member of this project")

    member = ProjectMember(
        project_id=project_id,
        member_telegram_id=member_telegram_id,
        role=(role or "").strip() or "Участник",
    )
    session.add(member)
    await session.flush()
    logger.info(f"User {member_telegram_id} joined project {project_id}")
    return project, member, user


# ─── ORDERS ──────────────────────────────────────────────

async def get_order(session: AsyncSession, order_id: str) -> Order:
    order = await session.get(Order, order_id)
    if not order:
        raise OrderNotFoundError()
    return order


async def get_accessible_order(session: AsyncSession, order_id: str, telegram_id: int) -> Order:
    order = await get_order(session, order_id)
    await check_project_access(session, order.project_id, telegram_id)
    return order


async def create_order(
    session: AsyncSession,
    project_id: str,
    creator_telegram_id: int,
    title: str,
    client_name: str,
    client_phone: str,
    code: str | None = None,
    **fields,
) -> Order:
    order = Order(
        project_id=project_id,
        user_telegram_id=creator_telegram_id,
        code=(code or "").strip() or generate_order_code(),
        title=title,
        client_name=client_name,
        client_phone=client_phone,
        status=OrderStatus.PENDING.value,
        archived=False,
        **fields,
    )
    session.add(order)
    await session.flush()
    logger.info(f"Order {order.id} ({order.code}) created in project {project_id}")
    return order


async def save_order_update(
    session: AsyncSession,
    order: Order,
    result: OrderUpdateResult,
    changed_fields,
) -> Order:
    """Write engine output back to the row and append its history entries."""
    for field in changed_fields:
        if field in UPDATABLE_FIELDS:
            setattr(order, field, getattr(result.order, field))
    order.updated_at = result.order.updated_at or datetime.now(timezone.utc)
    await add_history_entries(session, result.history, now=order.updated_at)
    await session.flush()
    return order


async def list_project_orders(session: AsyncSession, project_id: str) -> list[OrderRecord]:
    result = await session.execute(select(Order).where(Order.project_id == project_id))
    return [OrderRecord.model_validate(row) for row in result.scalars().all()]


async def list_orders(session: AsyncSession, telegram_id: int, project_id: str | None = None) -> list[Order]:
    """Non-archived orders of one project, or of every project the user can see."""
    query = select(Order).where(Order.archived.is_(False))
    if project_id:
        await check_project_access(session, project_id, telegram_id)
        query = query.where(Order.project_id == project_id)
    else:
        member_projects = select(ProjectMember.project_id).where(ProjectMember.member_telegram_id == telegram_id)
        query = query.join(Project, Project.id == Order.project_id).where(
            (Project.user_telegram_id == telegram_id) | Project.id.in_(member_projects),
        )
    result = await session.execute(query.order_by(Order.created_at.desc()))
    return result.scalars().all()


async def list_archived_orders(session: AsyncSession, telegram_id: int) -> list[Order]:
    member_projects = select(ProjectMember.project_id).where(ProjectMember.member_telegram_id == telegram_id)
    result = await session.execute(
        select(Order)
        .join(Project, Project.id == Order.project_id)
        .where(
            Order.archived.is_(True),
            (Project.user_telegram_id == telegram_id) | Project.id.in_(member_projects),
        )
        .order_by(Order.updated_at.desc())
    )
    return result.scalars().all()


async def load_active_orders(session: AsyncSession, with_reminders: bool = False) -> list[OrderRecord]:
    """Non-archived, not done orders that carry a due date."""
    query = select(Order).where(
        Order.due_date.isnot(None),
        Order.archived.is_(False),
        Order.status != OrderStatus.DONE.value,
    )
    if with_reminders:
        query = query.where(Order.reminder_offset.isnot(None))
    result = await session.execute(query)
    return [OrderRecord.model_validate(row) for row in result.scalars().all()]
