"""Create reporting, scheduling and delivery ledger tables

Revision ID: 20250601_create_reporting
Revises: None
Create Date: 2025-06-01
"""

from alembic import op
import sqlalchemy as sa

revision = "20250601_create_reporting"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="VIEWER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("telegram_id", sa.String(), nullable=True, unique=True),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("period_type", sa.String(), nullable=False, server_default="DAY"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_reports_id", "reports", ["id"])

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("reports.id"), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("minute", sa.Integer(), nullable=False),
        sa.Column("frequency", sa.String(), nullable=False, server_default="DAILY"),
        sa.Column("weekday", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("hour >= 0 AND hour <= 23", name="ck_schedules_hour"),
        sa.CheckConstraint("minute >= 0 AND minute <= 59", name="ck_schedules_minute"),
        sa.CheckConstraint(
            "weekday IS NULL OR (weekday >= 0 AND weekday <= 6)",
            name="ck_schedules_weekday",
        ),
    )
    op.create_index("ix_schedules_id", "schedules", ["id"])
    op.create_index("ix_schedules_report_id", "schedules", ["report_id"])
    op.create_index("ix_schedules_tick", "schedules", ["hour", "minute", "is_active"])

    op.create_table(
        "schedule_recipients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.UniqueConstraint("schedule_id", "user_id", name="uix_schedule_recipient"),
    )
    op.create_index("ix_schedule_recipients_id", "schedule_recipients", ["id"])
    op.create_index("ix_schedule_recipients_schedule_id", "schedule_recipients", ["schedule_id"])
    op.create_index("ix_schedule_recipients_user_id", "schedule_recipients", ["user_id"])

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("customer", sa.String(), nullable=False),
        sa.Column("product", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("sale_date", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_sales_quantity"),
        sa.CheckConstraint("price >= 0", name="ck_sales_price"),
    )
    op.create_index("ix_sales_id", "sales", ["id"])
    op.create_index("ix_sales_sale_date", "sales", ["sale_date"])

    op.create_table(
        "delivery_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("reports.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "schedule_id",
            sa.Integer(),
            sa.ForeignKey("schedules.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.Column("error_message", sa.String(), nullable=True),
    )
    op.create_index("ix_delivery_logs_id", "delivery_logs", ["id"])
    op.create_index(
        "ix_delivery_logs_schedule_sent", "delivery_logs", ["schedule_id", "sent_at"]
    )


def downgrade() -> None:
    op.drop_table("delivery_logs")
    op.drop_table("sales")
    op.drop_table("schedule_recipients")
    op.drop_table("schedules")
    op.drop_table("reports")
    op.drop_table("users")
