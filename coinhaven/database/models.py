"""
coinhaven.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- wallets            — Per-user-per-guild currency balance
- clans              — Guild-scoped social groups
- clan_members       — Ranked clan membership (one clan per user per guild)
- clan_invitations   — Outstanding invitations to a clan
- clan_banishments   — Users barred from re-joining a clan
- clan_statistics    — Per-clan running counters
- connect4_games     — Wagered Connect-4 matches (board as JSON text)
- work               — Cooldown journal for /fish and /daily
- inventory_items    — Tools bought from the shop
- interactions       — Single-use tokens behind buttons, selects and modals
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from coinhaven.constants import utcnow


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Coinhaven ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class InteractionType(enum.StrEnum):
    """What a pending interaction token does when it is used."""
    CLAN_CREATE = "CLAN_CREATE"
    CLAN_CREATE_WIZARD_CANCEL = "CLAN_CREATE_WIZARD_CANCEL"
    CLAN_CREATE_PROMPT_NAME = "CLAN_CREATE_PROMPT_NAME"
    CONNECT4_ACCEPT = "CONNECT4_ACCEPT"
    CONNECT4_DECLINE = "CONNECT4_DECLINE"
    CONNECT4_MOVE = "CONNECT4_MOVE"
    CONNECT4_FORFEIT = "CONNECT4_FORFEIT"
    SHOP_BUY_TOOL_MENU = "SHOP_BUY_TOOL_MENU"


class ClanMemberRole(enum.StrEnum):
    LEADER = "LEADER"
    OFFICER = "OFFICER"
    MEMBER = "MEMBER"


class ClanJoinSetting(enum.StrEnum):
    OPEN = "OPEN"
    INVITE_ONLY = "INVITE_ONLY"


class WorkType(enum.StrEnum):
    FISH = "FISH"
    DAILY = "DAILY"


def _new_token_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Wallets — one row per (user, guild)
# ---------------------------------------------------------------------------
class Wallet(Base):
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "guild_id", name="uq_wallets_user_guild"),
    )

    def __repr__(self) -> str:
        return f"<Wallet id={self.id} user={self.user_id} balance={self.balance}>"


# ---------------------------------------------------------------------------
# Clans
# ---------------------------------------------------------------------------
class Clan(Base):
    __tablename__ = "clans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(String(32), nullable=False)
    slug: Mapped[str] = mapped_column(String(40), nullable=False)
    abbreviation: Mapped[str | None] = mapped_column(String(4), default=None)
    join_setting: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClanJoinSetting.OPEN.value
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # No ORM cascade; clan_service.disband_clan deletes children explicitly.
    members: Mapped[list[ClanMember]] = relationship(back_populates="clan")
    statistics: Mapped[ClanStatistics | None] = relationship(uselist=False)

    __table_args__ = (
        UniqueConstraint("guild_id", "slug", name="uq_clans_guild_slug"),
        Index("ix_clans_guild_id", "guild_id"),
    )

    def __repr__(self) -> str:
        return f"<Clan id={self.id} name={self.name!r} guild={self.guild_id}>"


class ClanMember(Base):
    __tablename__ = "clan_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clan_id: Mapped[int] = mapped_column(Integer, ForeignKey("clans.id"), nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClanMemberRole.MEMBER.value
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    clan: Mapped[Clan] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("clan_id", "user_id", name="uq_clan_members_clan_user"),
        UniqueConstraint("guild_id", "user_id", name="uq_clan_members_guild_user"),
    )

    def __repr__(self) -> str:
        return f"<ClanMember clan={self.clan_id} user={self.user_id} role={self.role}>"


class ClanInvitation(Base):
    __tablename__ = "clan_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clan_id: Mapped[int] = mapped_column(Integer, ForeignKey("clans.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ClanBanishment(Base):
    __tablename__ = "clan_banishments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clan_id: Mapped[int] = mapped_column(Integer, ForeignKey("clans.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ClanStatistics(Base):
    __tablename__ = "clan_statistics"

    clan_id: Mapped[int] = mapped_column(Integer, ForeignKey("clans.id"), primary_key=True)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    fish_caught: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Connect-4
# ---------------------------------------------------------------------------
class Connect4Game(Base):
    """A wagered match.  ``board`` is the serialized
    :class:`~coinhaven.engine.connect4.Board`; ``game_state`` mirrors the
    board's state so live games can be queried without decoding JSON."""

    __tablename__ = "connect4_games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    challenger_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    opponent_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    challenger_color: Mapped[str] = mapped_column(String(10), nullable=False)
    board: Mapped[str] = mapped_column(Text, nullable=False)
    game_state: Mapped[str] = mapped_column(String(20), nullable=False)
    wager_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    move_time: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    last_move_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        Index("ix_connect4_games_guild_state", "guild_id", "game_state"),
    )

    def __repr__(self) -> str:
        return (
            f"<Connect4Game id={self.id} {self.challenger_id} vs {self.opponent_id} "
            f"state={self.game_state}>"
        )


# ---------------------------------------------------------------------------
# Work — cooldown journal
# ---------------------------------------------------------------------------
class Work(Base):
    __tablename__ = "work"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_work_user_guild_type_ts", "user_id", "guild_id", "type", "created_at"),
    )


# ---------------------------------------------------------------------------
# Inventory — shop tools
# ---------------------------------------------------------------------------
class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tool: Mapped[str] = mapped_column(String(40), nullable=False)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "guild_id", "tool", name="uq_inventory_user_guild_tool"),
    )


# ---------------------------------------------------------------------------
# Interactions — single-use tokens
# ---------------------------------------------------------------------------
class Interaction(Base):
    """A pending button/select/modal.  The row id is the component's
    custom-id.  ``consumed_at`` is written exactly once."""

    __tablename__ = "interactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_token_id)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        Index("ix_interactions_user_guild_type", "user_id", "guild_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<Interaction id={self.id} type={self.type} consumed={self.consumed_at is not None}>"
