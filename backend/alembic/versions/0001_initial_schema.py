"""0001 - Initial schema: leave types, balances, reservations, requests, carry-forward, audit.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-01-06 09:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -- leave_type ---------------------------------------------------------
    op.create_table(
        "leave_type",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("default_annual_days", sa.Integer(), server_default="0", nullable=False),
        sa.Column("carry_forward_max_days", sa.Integer(), nullable=True),
        sa.Column("carry_forward_expiry_months", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_leave_type_name"),
    )

    # -- leave_balance ------------------------------------------------------
    op.create_table(
        "leave_balance",
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), sa.ForeignKey("leave_type.id"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("allocated", sa.Integer(), server_default="0", nullable=False),
        sa.Column("carried_in", sa.Integer(), server_default="0", nullable=False),
        sa.Column("used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("pending", sa.Integer(), server_default="0", nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("employee_id", "leave_type_id", "year"),
        sa.CheckConstraint("used >= 0", name="ck_balance_used_non_negative"),
        sa.CheckConstraint("pending >= 0", name="ck_balance_pending_non_negative"),
        sa.CheckConstraint(
            "allocated + carried_in - used - pending >= 0",
            name="ck_balance_available_non_negative",
        ),
    )
    op.create_index("ix_leave_balance_employee_id", "leave_balance", ["employee_id"])
    op.create_index("ix_leave_balance_leave_type_id", "leave_balance", ["leave_type_id"])

    # -- leave_request ------------------------------------------------------
    op.create_table(
        "leave_request",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), sa.ForeignKey("leave_type.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("requested_days", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="pending", nullable=False),
        sa.Column("comments", sa.String(length=2000), nullable=True),
        sa.Column("decided_by", sa.Uuid(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_comments", sa.String(length=2000), nullable=True),
        sa.Column("cancelled_by", sa.Uuid(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_comments", sa.String(length=2000), nullable=True),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("employee_id", "idempotency_key", name="uq_leave_request_idempotency"),
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_date_order"),
    )
    op.create_index("ix_leave_request_employee_id", "leave_request", ["employee_id"])
    op.create_index("ix_leave_request_leave_type_id", "leave_request", ["leave_type_id"])
    op.create_index("ix_leave_request_status", "leave_request", ["status"])
    op.create_index("ix_leave_request_employee_status", "leave_request", ["employee_id", "status"])

    # -- leave_reservation --------------------------------------------------
    op.create_table(
        "leave_reservation",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Uuid(), sa.ForeignKey("leave_request.id"), nullable=False),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("days > 0", name="ck_reservation_days_positive"),
    )
    op.create_index("ix_leave_reservation_request_id", "leave_reservation", ["request_id"])
    op.create_index("ix_reservation_balance", "leave_reservation", ["employee_id", "leave_type_id", "year"])

    # -- carry_forward_record / carry_forward_expiry ------------------------
    op.create_table(
        "carry_forward_record",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type_id", sa.Uuid(), sa.ForeignKey("leave_type.id"), nullable=False),
        sa.Column("from_year", sa.Integer(), nullable=False),
        sa.Column("to_year", sa.Integer(), nullable=False),
        sa.Column("days_transferred", sa.Integer(), nullable=False),
        sa.Column("expires_on", sa.Date(), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", "from_year", "to_year", name="uq_carry_forward_idempotency"
        ),
    )
    op.create_index("ix_carry_forward_record_employee_id", "carry_forward_record", ["employee_id"])
    op.create_index("ix_carry_forward_record_leave_type_id", "carry_forward_record", ["leave_type_id"])
    op.create_index("ix_carry_forward_record_expires_on", "carry_forward_record", ["expires_on"])

    op.create_table(
        "carry_forward_expiry",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("record_id", sa.Uuid(), sa.ForeignKey("carry_forward_record.id"), nullable=False),
        sa.Column("days_expired", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("record_id", name="uq_carry_forward_expiry_record"),
    )

    # -- audit_log ----------------------------------------------------------
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("carry_forward_expiry")
    op.drop_table("carry_forward_record")
    op.drop_table("leave_reservation")
    op.drop_table("leave_request")
    op.drop_table("leave_balance")
    op.drop_table("leave_type")
