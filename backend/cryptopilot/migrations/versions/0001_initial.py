"""Initial schema for Cryptopilot."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


transaction_side = sa.Enum("BUY", "SELL", "TRANSFER", name="transaction_side")


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("side", transaction_side, nullable=False),
        sa.Column("quantity", sa.Numeric(38, 18), nullable=False),
        sa.Column("price", sa.Numeric(38, 18), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("note", sa.String(length=512), nullable=True),
        sa.Column("fee", sa.Numeric(38, 18), nullable=True),
        sa.Column("fee_currency", sa.String(length=16), nullable=True),
        sa.Column("exchange", sa.String(length=64), nullable=True),
        sa.Column("ext_ref", sa.String(length=128), nullable=True),
        sa.Column("client_tx_id", sa.String(length=256), nullable=True),
        sa.Column("import_batch_id", sa.String(length=64), nullable=True),
        sa.Column("dedupe_key", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "dedupe_key", name="uq_transactions_user_dedupe"),
    )
    op.create_index("ix_transactions_user_timestamp", "transactions", ["user_id", "timestamp"])
    op.create_index("ix_transactions_user_symbol", "transactions", ["user_id", "symbol"])

    op.create_table(
        "historical_prices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("token_id", sa.String(length=128), nullable=False),
        sa.Column("price", sa.Numeric(38, 18), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("date", "symbol", name="uq_historical_prices_date_symbol"),
    )
    op.create_index("ix_historical_prices_symbol_date", "historical_prices", ["symbol", "date"])

    op.create_table(
        "token_map",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("provider_id", sa.String(length=128), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.UniqueConstraint("symbol", "provider_id", name="uq_token_map_symbol_provider"),
    )
    op.create_index("ix_token_map_symbol", "token_map", ["symbol"])

    op.create_table(
        "portfolio_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_value", sa.Numeric(38, 18), nullable=False),
        sa.Column(
            "breakdown",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "date", name="uq_portfolio_snapshots_user_date"),
    )


def downgrade() -> None:
    op.drop_table("portfolio_snapshots")
    op.drop_index("ix_token_map_symbol", table_name="token_map")
    op.drop_table("token_map")
    op.drop_index("ix_historical_prices_symbol_date", table_name="historical_prices")
    op.drop_table("historical_prices")
    op.drop_index("ix_transactions_user_symbol", table_name="transactions")
    op.drop_index("ix_transactions_user_timestamp", table_name="transactions")
    op.drop_table("transactions")
    transaction_side.drop(op.get_bind(), checkfirst=True)
