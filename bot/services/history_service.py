from datetime import datetime, timedelta, timezone
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from bot.db.models import OrderHistory
from bot.services.records import HistoryRecord


async def add_history_entries(
    session: AsyncSession,
    entries: list[HistoryRecord],
    now: datetime | None = None,
) -> list[OrderHistory]:
    """Bulk insert; entries without a timestamp get strictly increasing ones."""
    if not entries:
        return []

    now = now or datetime.now(timezone.utc)
    rows = [
        OrderHistory(
            order_id=entry.order_id,
            event_type=entry.event_type,
            description=entry.description,
            icon=entry.icon,
            created_by=entry.created_by,
            created_by_name=entry.created_by_name,
            meta=entry.meta,
            created_at=entry.created_at or now + timedelta(microseconds=index),
        )
        for index, entry in enumerate(entries)
    ]
    session.add_all(rows)
    await session.flush()
    return rows


async def fetch_order_history(session: AsyncSession, order_id: str) -> list[HistoryRecord]:
    result = await session.execute(
        select(OrderHistory)
        .where(OrderHistory.order_id == order_id)
        .order_by(OrderHistory.created_at.asc(), OrderHistory.id.asc())
    )
    return [HistoryRecord.model_validate(row) for row in result.scalars().all()]


async def fetch_history_for_orders(session: AsyncSession, order_ids: list[str]) -> list[HistoryRecord]:
    if not order_ids:
        return []
    result = await session.execute(
        select(OrderHistory)
        .where(OrderHistory.order_id.in_(order_ids))
        .order_by(OrderHistory.created_at.asc(), OrderHistory.id.asc())
    )
    return [HistoryRecord.model_validate(row) for row in result.scalars().all()]
