"""Initial schema: saved strategies and backtest results.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- strategy ---
    op.create_table(
        "strategy",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("inputs", sa.Text(), nullable=False),
        sa.Column("backtest_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_backtest_at", sa.String(), nullable=True),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("updated_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    # --- backtest_result ---
    op.create_table(
        "backtest_result",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("strategy_id", sa.Integer(), nullable=True),
        sa.Column("result_id", sa.String(), nullable=False),
        sa.Column("strategy_name", sa.String(), nullable=False),
        sa.Column("symbol", sa.String(), nullable=False),
        sa.Column("timeframe", sa.String(), nullable=False),
        sa.Column("start_date", sa.String(), nullable=False),
        sa.Column("end_date", sa.String(), nullable=False),
        sa.Column("initial_capital", sa.Float(), nullable=False),
        sa.Column("final_equity", sa.Float(), nullable=False),
        sa.Column("total_return", sa.Float(), nullable=False),
        sa.Column("sharpe_ratio", sa.Float(), nullable=False),
        sa.Column("max_drawdown", sa.Float(), nullable=False),
        sa.Column("win_rate", sa.Float(), nullable=False),
        sa.Column("total_trades", sa.Integer(), nullable=False),
        sa.Column("params", sa.Text(), nullable=False),
        sa.Column("full_result", sa.Text(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["strategy_id"], ["strategy.id"], ondelete="SET NULL"
        ),
    )
    op.create_index("ix_backtest_result_symbol", "backtest_result", ["symbol"])
    op.create_index(
        "ix_backtest_result_strategy_name", "backtest_result", ["strategy_name"]
    )
    op.create_index(
        "ix_backtest_result_created_at", "backtest_result", ["created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_backtest_result_created_at", table_name="backtest_result")
    op.drop_index("ix_backtest_result_strategy_name", table_name="backtest_result")
    op.drop_index("ix_backtest_result_symbol", table_name="backtest_result")
    op.drop_table("backtest_result")
    op.drop_table("strategy")
