import uuid
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, DateTime, Boolean,
    ForeignKey, Numeric, JSON, UniqueConstraint, Index, func
)
from sqlalchemy.orm import relationship, DeclarativeBase


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


# ─── MODELS ──────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"

    telegram_id = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String(255))
    first_name = Column(String(255))
    last_name = Column(String(255))
    photo_url = Column(String(1000))
    time_zone = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=func.now())


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    color = Column(String(32))
    user_telegram_id = Column(BigInteger, ForeignKey("users.telegram_id"), nullable=False)
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    members = relationship("ProjectMember", back_populates="project")
    orders = relationship("Order", back_populates="project")


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "member_telegram_id", name="uq_project_member"),
    )

    id = Column(Integer, primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    member_telegram_id = Column(BigInteger, nullable=False)
    role = Column(String(64), default="Участник")
    created_at = Column(DateTime(timezone=True), default=func.now())

    project = relationship("Project", back_populates="members")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_telegram_id = Column(BigInteger, nullable=False)  # creator
    code = Column(String(64), nullable=False)
    title = Column(String(500), nullable=False)
    summary = Column(Text)
    description = Column(Text)
    # Raw value; legacy rows may hold "new" or "cancelled"
    status = Column(String(32), default="pending", nullable=False)
    assignee_telegram_id = Column(BigInteger)
    assignee_telegram_name = Column(String(255))
    assignee_telegram_avatar_url = Column(String(1000))
    # "YYYY-MM-DD" or an ISO instant
    due_date = Column(String(40))
    due_time = Column(String(8))
    # "1h,3h" or '["1h","3h"]'
    reminder_offset = Column(String(255))
    delivery_address = Column(Text)
    client_name = Column(String(255))
    client_phone = Column(String(64))
    payment_type = Column(String(32))
    prepayment_amount = Column(Numeric(12, 2))
    total_amount = Column(Numeric(12, 2))
    image_urls = Column(JSON)
    review_comment = Column(Text)
    review_images = Column(JSON)
    review_answer = Column(Text)
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="orders")
    history = relationship("OrderHistory", back_populates="order", order_by="OrderHistory.created_at")

    __table_args__ = (
        Index("ix_orders_project", "project_id"),
        Index("ix_orders_active_due", "archived", "status", "due_date"),
    )


class OrderHistory(Base):
    __tablename__ = "order_history"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(64), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(64))
    created_by = Column(BigInteger)
    created_by_name = Column(String(255))
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    order = relationship("Order", back_populates="history")

    __table_args__ = (
        Index("ix_order_history_order_date", "order_id", "created_at"),
    )


class OrderReminderLog(Base):
    __tablename__ = "order_reminder_logs"
    __table_args__ = (
        UniqueConstraint(
            "order_id", "reminder_offset", "target_datetime",
            name="uq_order_reminder_log",
        ),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    reminder_offset = Column(String(8), nullable=False)
    target_datetime = Column(DateTime(timezone=True), nullable=False)
    sent_at = Column(DateTime(timezone=True), default=func.now())
