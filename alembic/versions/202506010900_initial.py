"""initial finance schema

Revision ID: 202506010900
Revises:
Create Date: 2025-06-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202506010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "user_id", sa.String(length=32), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])

    op.create_table(
        "incomes",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "user_id", sa.String(length=32), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("source", sa.String(length=200)),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_incomes_user_date", "incomes", ["user_id", "date"])
    op.create_index("ix_incomes_user_source", "incomes", ["user_id", "source"])

    op.create_table(
        "saving_goals",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "user_id", sa.String(length=32), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("title", sa.String(length=200)),
        sa.Column("target_amount", sa.Float()),
        sa.Column("current_amount", sa.Float()),
        sa.Column("deadline", sa.DateTime()),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_saving_goals_user_deadline", "saving_goals", ["user_id", "deadline"]
    )


def downgrade():
    op.drop_index("ix_saving_goals_user_deadline", table_name="saving_goals")
    op.drop_table("saving_goals")
    op.drop_index("ix_incomes_user_source", table_name="incomes")
    op.drop_index("ix_incomes_user_date", table_name="incomes")
    op.drop_table("incomes")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("users")
