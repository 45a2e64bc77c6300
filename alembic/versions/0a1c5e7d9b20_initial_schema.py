"""Initial schema: wallets, clans, connect-4, work, inventory, interactions

Revision ID: 0a1c5e7d9b20
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c5e7d9b20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "guild_id", name="uq_wallets_user_guild"),
    )

    op.create_table(
        "clans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("slug", sa.String(40), nullable=False),
        sa.Column("abbreviation", sa.String(4), nullable=True),
        sa.Column("join_setting", sa.String(20), nullable=False, server_default="OPEN"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        _ts("created_at"),
        sa.UniqueConstraint("guild_id", "slug", name="uq_clans_guild_slug"),
    )
    op.create_index("ix_clans_guild_id", "clans", ["guild_id"])

    op.create_table(
        "clan_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("clan_id", sa.Integer(), sa.ForeignKey("clans.id"), nullable=False),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="MEMBER"),
        _ts("joined_at"),
        sa.UniqueConstraint("clan_id", "user_id", name="uq_clan_members_clan_user"),
        sa.UniqueConstraint("guild_id", "user_id", name="uq_clan_members_guild_user"),
    )

    for table in ("clan_invitations", "clan_banishments"):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("clan_id", sa.Integer(), sa.ForeignKey("clans.id"), nullable=False),
            sa.Column("user_id", sa.BigInteger(), nullable=False),
            _ts("created_at"),
        )

    op.create_table(
        "clan_statistics",
        sa.Column("clan_id", sa.Integer(), sa.ForeignKey("clans.id"), primary_key=True),
        sa.Column("total_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("fish_caught", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "connect4_games",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("channel_id", sa.BigInteger(), nullable=True),
        sa.Column("challenger_id", sa.BigInteger(), nullable=False),
        sa.Column("opponent_id", sa.BigInteger(), nullable=False),
        sa.Column("challenger_color", sa.String(10), nullable=False),
        sa.Column("board", sa.Text(), nullable=False),
        sa.Column("game_state", sa.String(20), nullable=False),
        sa.Column("wager_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("move_time", sa.Integer(), nullable=False, server_default="300"),
        _ts("last_move_at"),
        _ts("created_at"),
        _ts("ended_at"),
    )
    op.create_index(
        "ix_connect4_games_guild_state", "connect4_games", ["guild_id", "game_state"]
    )

    op.create_table(
        "work",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        _ts("created_at"),
    )
    op.create_index(
        "ix_work_user_guild_type_ts", "work", ["user_id", "guild_id", "type", "created_at"]
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("tool", sa.String(40), nullable=False),
        _ts("purchased_at"),
        sa.UniqueConstraint(
            "user_id", "guild_id", "tool", name="uq_inventory_user_guild_tool"
        ),
    )

    op.create_table(
        "interactions",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("channel_id", sa.BigInteger(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        _ts("created_at"),
        _ts("expires_at"),
        _ts("consumed_at"),
    )
    op.create_index(
        "ix_interactions_user_guild_type", "interactions", ["user_id", "guild_id", "type"]
    )


def downgrade() -> None:
    op.drop_index("ix_interactions_user_guild_type", table_name="interactions")
    op.drop_table("interactions")
    op.drop_table("inventory_items")
    op.drop_index("ix_work_user_guild_type_ts", table_name="work")
    op.drop_table("work")
    op.drop_index("ix_connect4_games_guild_state", table_name="connect4_games")
    op.drop_table("connect4_games")
    op.drop_table("clan_statistics")
    op.drop_table("clan_banishments")
    op.drop_table("clan_invitations")
    op.drop_table("clan_members")
    op.drop_index("ix_clans_guild_id", table_name="clans")
    op.drop_table("clans")
    op.drop_table("wallets")
