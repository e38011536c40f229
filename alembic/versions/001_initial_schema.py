"""Initial schema — card_index, pokepulse_catalogue, market_price_history, watchlist

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- card_index (bulk-loaded from TCGdex) ---
    op.create_table(
        "card_index",
        sa.Column("id", sa.String(50), primary_key=True, comment="TCGdex card id"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("local_id", sa.String(50), nullable=True, comment="In-set card number as printed"),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("rarity", sa.String(100), nullable=True),
        sa.Column("hp", sa.INTEGER(), nullable=True),
        sa.Column("card_type", sa.String(100), nullable=True, comment="Comma-joined energy types"),
        sa.Column("stage", sa.String(50), nullable=True),
        sa.Column("evolve_from", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("illustrator", sa.String(255), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("set_id", sa.String(50), nullable=True),
        sa.Column("set_name", sa.String(255), nullable=True),
        sa.Column("set_logo", sa.Text(), nullable=True),
        sa.Column("set_symbol", sa.Text(), nullable=True),
        sa.Column("set_total", sa.INTEGER(), nullable=True),
        sa.Column(
            "external_set_id",
            sa.String(50),
            nullable=True,
            comment="PokePulse set id override; wins over the computed mapping",
        ),
        sa.Column("variants_normal", sa.BOOLEAN(), server_default="false"),
        sa.Column("variants_reverse", sa.BOOLEAN(), server_default="false"),
        sa.Column("variants_holo", sa.BOOLEAN(), server_default="false"),
        sa.Column("variants_first_ed", sa.BOOLEAN(), server_default="false"),
        sa.Column("attacks", JSONB(), nullable=True),
        sa.Column("weaknesses", JSONB(), nullable=True),
        sa.Column("resistances", JSONB(), nullable=True),
        sa.Column("retreat_cost", sa.INTEGER(), nullable=True),
        sa.Column("legal_standard", sa.BOOLEAN(), server_default="false"),
        sa.Column("legal_expanded", sa.BOOLEAN(), server_default="false"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_card_index_name", "card_index", ["name"])
    op.create_index("ix_card_index_local_id", "card_index", ["local_id"])
    op.create_index("ix_card_index_set_id", "card_index", ["set_id"])
    op.create_index("ix_card_index_set_name", "card_index", ["set_name"])

    # --- pokepulse_catalogue (durable product-identity cache) ---
    op.create_table(
        "pokepulse_catalogue",
        sa.Column("product_id", sa.String(255), primary_key=True),
        sa.Column("set_id", sa.String(50), nullable=True, comment="Set id the search was made with"),
        sa.Column("card_number", sa.String(50), nullable=True),
        sa.Column("card_name", sa.String(255), nullable=True),
        sa.Column("material", sa.String(100), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column(
            "last_fetched",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_pokepulse_catalogue_set_number", "pokepulse_catalogue", ["set_id", "card_number"]
    )

    # --- market_price_history (one row per card per day) ---
    op.create_table(
        "market_price_history",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("set_id", sa.String(50), nullable=False),
        sa.Column("card_number", sa.String(50), nullable=False),
        sa.Column("card_name", sa.String(255), nullable=True),
        sa.Column("market_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("last_sold_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("last_sold_date", sa.String(40), nullable=True),
        sa.Column("trend_7d_pct", sa.DECIMAL(8, 2), nullable=True),
        sa.Column("trend_30d_pct", sa.DECIMAL(8, 2), nullable=True),
        sa.Column("snapshot_date", sa.DATE(), nullable=False),
        sa.UniqueConstraint(
            "set_id", "card_number", "snapshot_date",
            name="uq_market_price_history_card_day",
        ),
    )
    op.create_index("ix_market_price_history_date", "market_price_history", ["snapshot_date"])

    # --- price_watchlist / price_alerts ---
    op.create_table(
        "price_watchlist",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.INTEGER(), nullable=False),
        sa.Column("set_id", sa.String(50), nullable=False),
        sa.Column("card_number", sa.String(50), nullable=False),
        sa.Column("card_name", sa.String(255), nullable=True),
        sa.Column("set_name", sa.String(255), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("product_id", sa.String(255), nullable=True),
        sa.Column("last_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("last_checked", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "set_id", "card_number", name="uq_price_watchlist_user_card"),
    )
    op.create_index("ix_price_watchlist_card", "price_watchlist", ["set_id", "card_number"])

    op.create_table(
        "price_alerts",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.INTEGER(), nullable=False),
        sa.Column(
            "watchlist_id",
            sa.INTEGER(),
            sa.ForeignKey("price_watchlist.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("alert_type", sa.String(20), nullable=False, comment="pct_up | pct_down | above | below"),
        sa.Column("threshold", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("cooldown_hours", sa.INTEGER(), nullable=True),
        sa.Column("is_active", sa.BOOLEAN(), server_default="true"),
        sa.Column("last_triggered", sa.TIMESTAMP(timezone=True), nullable=True),
    )

    # --- notification_settings ---
    op.create_table(
        "notification_settings",
        sa.Column("user_id", sa.INTEGER(), primary_key=True),
        sa.Column("channels_enabled", JSONB(), nullable=True),
        sa.Column("telegram_chat_id", sa.String(64), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("notification_settings")
    op.drop_table("price_alerts")
    op.drop_index("ix_price_watchlist_card", table_name="price_watchlist")
    op.drop_table("price_watchlist")
    op.drop_index("ix_market_price_history_date", table_name="market_price_history")
    op.drop_table("market_price_history")
    op.drop_index("ix_pokepulse_catalogue_set_number", table_name="pokepulse_catalogue")
    op.drop_table("pokepulse_catalogue")
    op.drop_index("ix_card_index_set_name", table_name="card_index")
    op.drop_index("ix_card_index_set_id", table_name="card_index")
    op.drop_index("ix_card_index_local_id", table_name="card_index")
    op.drop_index("ix_card_index_name", table_name="card_index")
    op.drop_table("card_index")
