# app/db_models.py
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    Numeric,
    ForeignKey,
    CheckConstraint,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True, default="")
    last_name = Column(String, nullable=True, default="")

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Auth-related fields
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default="VIEWER")  # "ADMIN" or "VIEWER"
    is_active = Column(Boolean, nullable=False, default=True)

    # Deliverable address for the messaging channel; unbound users have none
    telegram_id = Column(String, unique=True, nullable=True)

    schedule_links = relationship(
        "ScheduleRecipient",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    period_type = Column(String, nullable=False, default="DAY")  # "DAY", "WEEK", "MONTH"
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    schedules = relationship("Schedule", back_populates="report")


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False, index=True)

    hour = Column(Integer, nullable=False)
    minute = Column(Integer, nullable=False)
    frequency = Column(String, nullable=False, default="DAILY")  # "DAILY" or "WEEKLY"
    # 0 = Sunday .. 6 = Saturday, only set for WEEKLY
    weekday = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    report = relationship("Report", back_populates="schedules")
    recipient_links = relationship(
        "ScheduleRecipient",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleRecipient.id",
    )

    __table_args__ = (
        CheckConstraint("hour >= 0 AND hour <= 23", name="ck_schedules_hour"),
        CheckConstraint("minute >= 0 AND minute <= 59", name="ck_schedules_minute"),
        CheckConstraint(
            "weekday IS NULL OR (weekday >= 0 AND weekday <= 6)",
            name="ck_schedules_weekday",
        ),
        Index("ix_schedules_tick", "hour", "minute", "is_active"),
    )


class ScheduleRecipient(Base):
    __tablename__ = "schedule_recipients"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    schedule = relationship("Schedule", back_populates="recipient_links")
    user = relationship("User", back_populates="schedule_links")

    __table_args__ = (
        UniqueConstraint("schedule_id", "user_id", name="uix_schedule_recipient"),
    )


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    customer = Column(String, nullable=False)
    product = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    # Naive UTC
    sale_date = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sales_quantity"),
        CheckConstraint("price >= 0", name="ck_sales_price"),
    )


class DeliveryLog(Base):
    """Append-only delivery ledger; SUCCESS rows double as the dedup record."""

    __tablename__ = "delivery_logs"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # Survives schedule deletion so the audit trail stays intact
    schedule_id = Column(
        Integer, ForeignKey("schedules.id", ondelete="SET NULL"), nullable=True
    )

    status = Column(String, nullable=False)  # "SUCCESS" or "ERROR"
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    error_message = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_delivery_logs_schedule_sent", "schedule_id", "sent_at"),
    )
