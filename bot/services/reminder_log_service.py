from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from bot.db.models import OrderReminderLog
from bot.services.records import ReminderLogRecord, ReminderLogWrite


async def load_reminder_logs(
    session: AsyncSession,
    order_ids,
    since: datetime | None = None,
) -> list[ReminderLogRecord]:
    order_ids = list(order_ids)
    if not order_ids:
        return []
    query = select(OrderReminderLog).where(OrderReminderLog.order_id.in_(order_ids))
    if since is not None:
        query = query.where(OrderReminderLog.target_datetime >= since)
    result = await session.execute(query)
    return [ReminderLogRecord.model_validate(row) for row in result.scalars().all()]


def _insert_for(session: AsyncSession):
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert(OrderReminderLog)
    return postgresql.insert(OrderReminderLog)


async def write_reminder_log(session: AsyncSession, write: ReminderLogWrite, sent_at: datetime | None = None) -> bool:
    """Insert the log row; False when another sweep already logged the same key."""
    stmt = _insert_for(session).values(
        order_id=write.order_id,
        reminder_offset=write.reminder_offset.value,
        target_datetime=write.target_datetime,
        sent_at=sent_at or datetime.now(timezone.utc),
    ).on_conflict_do_nothing(index_elements=["order_id", "reminder_offset", "target_datetime"])
    result = await session.execute(stmt)
    return bool(result.rowcount)
