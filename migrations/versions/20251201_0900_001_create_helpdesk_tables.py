"""Create help-desk approval tables

Revision ID: 001
Revises:
Create Date: 2025-12-01 09:00:00.000000

Creates the following tables:
- departments: Departments / teams and their heads
- users: Users with reporting manager and roles
- ticket_categories: Categories with approval policy flags
- tickets: Tickets with status and approval phase
- ticket_histories: Append-only ticket history
- ticket_approvals: Approval gates (one row per gate instance)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ========================================
    # 1. departments table
    # ========================================
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("head_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_departments"),
        sa.UniqueConstraint("code", name="uq_departments_code"),
    )

    # ========================================
    # 2. users table
    # ========================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("roles", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], name="fk_users_department_id_departments"),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], name="fk_users_manager_id_users"),
    )
    op.create_index("ix_users_department_id", "users", ["department_id"])

    # ========================================
    # 3. ticket_categories table
    # ========================================
    op.create_table(
        "ticket_categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("default_team_id", sa.Integer(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("requires_hod_approval", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("hod_approval_threshold", sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_ticket_categories"),
        sa.ForeignKeyConstraint(
            ["default_team_id"], ["departments.id"],
            name="fk_ticket_categories_default_team_id_departments",
        ),
    )

    # ========================================
    # 4. tickets table
    # ========================================
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ticket_number", sa.String(30), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("approval_phase", sa.String(30), nullable=False, server_default="not_required"),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("assigned_team_id", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_tickets"),
        sa.UniqueConstraint("ticket_number", name="uq_tickets_ticket_number"),
        sa.ForeignKeyConstraint(["category_id"], ["ticket_categories.id"], name="fk_tickets_category_id_ticket_categories"),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], name="fk_tickets_requester_id_users"),
        sa.ForeignKeyConstraint(["assigned_team_id"], ["departments.id"], name="fk_tickets_assigned_team_id_departments"),
        sa.CheckConstraint(
            "status IN ('open', 'assigned', 'in_progress', 'pending', 'resolved', 'closed', 'cancelled')",
            name="ck_tickets_status",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'critical')",
            name="ck_tickets_priority",
        ),
        sa.CheckConstraint(
            "approval_phase IN ('not_required', 'awaiting_approval', 'approved', 'rejected')",
            name="ck_tickets_approval_phase",
        ),
    )
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("ix_tickets_category_id", "tickets", ["category_id"])
    op.create_index("ix_tickets_requester_id", "tickets", ["requester_id"])

    # ========================================
    # 5. ticket_histories table
    # ========================================
    op.create_table(
        "ticket_histories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("field_name", sa.String(50), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_ticket_histories"),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], name="fk_ticket_histories_ticket_id_tickets"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_ticket_histories_user_id_users"),
    )
    op.create_index("ix_ticket_histories_ticket_id", "ticket_histories", ["ticket_id"])

    # ========================================
    # 6. ticket_approvals table
    # ========================================
    op.create_table(
        "ticket_approvals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("approval_level", sa.String(30), nullable=False),
        sa.Column("approval_pass", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approver_id", sa.Integer(), nullable=True),
        sa.Column("approver_capability", sa.String(100), nullable=False, server_default="tickets:approve"),
        sa.Column("decided_by_id", sa.Integer(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("routed_to_team_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_ticket_approvals"),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"], name="fk_ticket_approvals_ticket_id_tickets"),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"], name="fk_ticket_approvals_approver_id_users"),
        sa.ForeignKeyConstraint(["decided_by_id"], ["users.id"], name="fk_ticket_approvals_decided_by_id_users"),
        sa.ForeignKeyConstraint(
            ["routed_to_team_id"], ["departments.id"],
            name="fk_ticket_approvals_routed_to_team_id_departments",
        ),
        sa.CheckConstraint(
            "approval_level IN ('line_manager', 'head_of_department')",
            name="ck_ticket_approvals_approval_level",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_ticket_approvals_status",
        ),
        sa.CheckConstraint(
            "NOT (approved_at IS NOT NULL AND rejected_at IS NOT NULL)",
            name="ck_ticket_approvals_single_decision",
        ),
        sa.CheckConstraint(
            "status <> 'rejected' OR (comments IS NOT NULL AND comments <> '')",
            name="ck_ticket_approvals_rejection_comments",
        ),
    )
    op.create_index("ix_ticket_approvals_ticket_id", "ticket_approvals", ["ticket_id"])
    op.create_index("ix_ticket_approvals_status", "ticket_approvals", ["status"])
    op.create_index("ix_ticket_approvals_approver_id", "ticket_approvals", ["approver_id"])
    op.create_index(
        "ix_ticket_approvals_ticket_level_status",
        "ticket_approvals",
        ["ticket_id", "approval_level", "status"],
    )
    # At most one pending gate per ticket
    op.create_index(
        "uq_ticket_approvals_one_pending",
        "ticket_approvals",
        ["ticket_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_table("ticket_approvals")
    op.drop_table("ticket_histories")
    op.drop_table("tickets")
    op.drop_table("ticket_categories")
    op.drop_table("users")
    op.drop_table("departments")
