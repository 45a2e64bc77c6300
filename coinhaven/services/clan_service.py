"""
coinhaven.services.clan_service — Clan Lifecycle
=================================================

Clan membership lookups, the three-step creation wizard, leaving /
disbanding, and the info card.

Wizard flow::

    /clan create      → step1: confirmation embed, Proceed + Cancel tokens
    Proceed (button)  → step2: opens the name modal (PROMPT_NAME token)
    modal submit      → create_from_name: validate, charge, create
    Cancel (button)   → cancel_wizard

Every step consumes the user's earlier wizard tokens so only the latest
prompt stays live.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from coinhaven.constants import (
    COLOR_ERROR,
    COLOR_INFO,
    COLOR_SUCCESS,
    discord_timestamp,
    ensure_utc,
    format_currency,
    format_number,
    utcnow,
)
from coinhaven.database.models import (
    Clan,
    ClanBanishment,
    ClanInvitation,
    ClanJoinSetting,
    ClanMember,
    ClanMemberRole,
    ClanStatistics,
    InteractionType,
)
from coinhaven.engine.payloads import WIZARD_TYPES, ClanNamePromptPayload
from coinhaven.services import interaction_service, wallet_service
from coinhaven.services.replies import (
    ButtonSpec,
    ButtonStyle,
    EmbedField,
    EmbedSpec,
    MessageEdit,
    ModalSpec,
    Reply,
    TextInputSpec,
    error_reply,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from coinhaven.config import CoinhavenConfig
    from coinhaven.services.interaction_service import ResolvedInteraction

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 32
ABBREVIATION_LENGTH = 4

_NAME_RE = re.compile(r"^[A-Za-z0-9 \-_']+$")
_SLUG_PART_RE = re.compile(r"[a-z0-9]+")
_ABBREVIATION_RE = re.compile(r"^[A-Za-z0-9]+$")

WIZARD_TITLE = "Clan Creation Wizard"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_user_clan(session: Session, user_id: int, guild_id: int) -> Clan | None:
    """The clan *user_id* belongs to in *guild_id*, if any."""
    return session.scalar(
        select(Clan)
        .join(ClanMember, ClanMember.clan_id == Clan.id)
        .where(ClanMember.user_id == user_id, ClanMember.guild_id == guild_id)
    )


def _get_membership(session: Session, user_id: int, guild_id: int) -> ClanMember | None:
    return session.scalar(
        select(ClanMember).where(
            ClanMember.user_id == user_id, ClanMember.guild_id == guild_id
        )
    )


def _member_count(session: Session, clan_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(ClanMember).where(ClanMember.clan_id == clan_id)
    ) or 0


# ---------------------------------------------------------------------------
# Name validation
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClanName:
    name: str
    slug: str


class ClanNameError(ValueError):
    """The submitted clan name was rejected; ``str(exc)`` is user-facing."""


def slugify(name: str) -> str:
    return "-".join(_SLUG_PART_RE.findall(name.lower()))


def validate_clan_name(session: Session, raw: str, guild_id: int) -> ClanName:
    """Normalise and check a submitted clan name.

    Raises
    ------
    ClanNameError
        Bad length or characters, or the name / slug is taken in the guild.
    """
    name = " ".join((raw or "").split())
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ClanNameError(
            f"Clan name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters."
        )
    if not _NAME_RE.match(name):
        raise ClanNameError(
            "Clan name can only contain letters, numbers, spaces, "
            "dashes, underscores and apostrophes."
        )

    slug = slugify(name)
    if not slug:
        raise ClanNameError("Clan name must contain at least one letter or number.")

    taken = session.scalar(
        select(Clan.id).where(
            Clan.guild_id == guild_id,
            (func.lower(Clan.name) == name.lower()) | (Clan.slug == slug),
        )
    )
    if taken is not None:
        raise ClanNameError(f"A clan named **{name}** already exists.")
    return ClanName(name=name, slug=slug)


def suggest_abbreviation(session: Session, name: str, guild_id: int) -> str | None:
    """First four characters of *name*, when usable as an abbreviation."""
    candidate = name[:ABBREVIATION_LENGTH].strip()
    if not _ABBREVIATION_RE.match(candidate) or len(candidate) >= len(name):
        return None
    used = session.scalar(
        select(Clan.id).where(Clan.guild_id == guild_id, Clan.abbreviation == candidate)
    )
    return None if used is not None else candidate


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------
def wizard_step1(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
    channel_id: int | None,
    now: datetime | None = None,
) -> Reply:
    """``/clan create``: confirmation prompt with Proceed / Cancel."""
    now = now or utcnow()
    with Session(engine) as session:
        if get_user_clan(session, user_id, guild_id) is not None:
            return error_reply("You are already a member of a clan.")

        interaction_service.consume_for_user(
            session, user_id=user_id, guild_id=guild_id, types=WIZARD_TYPES, now=now
        )
        ttl = timedelta(minutes=cfg.economy.interaction_ttl_minutes)
        proceed = interaction_service.create_token(
            session,
            interaction_type=InteractionType.CLAN_CREATE,
            user_id=user_id,
            guild_id=guild_id,
            channel_id=channel_id,
            ttl=ttl,
            now=now,
        )
        cancel = interaction_service.create_token(
            session,
            interaction_type=InteractionType.CLAN_CREATE_WIZARD_CANCEL,
            user_id=user_id,
            guild_id=guild_id,
            channel_id=channel_id,
            ttl=ttl,
            now=now,
        )
        proceed_id, cancel_id = proceed.id, cancel.id
        session.commit()

    price = format_currency(cfg.economy.clan_create_price, cfg.currency_symbol)
    embed = EmbedSpec(
        title=WIZARD_TITLE,
        description="\n\n".join([
            "Welcome to the clan creation wizard!",
            "A clan is a small community of players that can chat, share "
            "resources, and participate in events together.",
            f"Creating a clan costs **{price}**",
            "Are you sure you want to proceed?",
        ]),
        color=COLOR_INFO,
    )
    buttons = (
        ButtonSpec(proceed_id, "Proceed", ButtonStyle.SUCCESS),
        ButtonSpec(cancel_id, "Cancel", ButtonStyle.DANGER),
    )
    return Reply(embed=embed, components=[buttons])


def wizard_step2(ctx: ResolvedInteraction) -> Reply:
    """Proceed clicked: open the name modal."""
    event = ctx.event
    interaction_service.consume_for_user(
        ctx.session,
        user_id=event.user_id,
        guild_id=event.guild_id,
        types=WIZARD_TYPES,
        exclude_id=ctx.token.id,
        now=ctx.now,
    )
    prompt = interaction_service.create_token(
        ctx.session,
        interaction_type=InteractionType.CLAN_CREATE_PROMPT_NAME,
        user_id=event.user_id,
        guild_id=event.guild_id,
        channel_id=event.channel_id,
        payload=ClanNamePromptPayload(wizard_message_id=event.message_id),
        ttl=timedelta(minutes=ctx.cfg.economy.interaction_ttl_minutes),
        now=ctx.now,
    )
    modal = ModalSpec(
        token_id=prompt.id,
        title="Clan Name",
        inputs=(TextInputSpec("name", "Clan Name", max_length=NAME_MAX_LENGTH),),
    )
    return Reply(modal=modal)


def cancel_wizard(ctx: ResolvedInteraction) -> Reply:
    interaction_service.consume_for_user(
        ctx.session,
        user_id=ctx.event.user_id,
        guild_id=ctx.event.guild_id,
        types=WIZARD_TYPES,
        now=ctx.now,
    )
    return Reply(
        embed=EmbedSpec(
            title=WIZARD_TITLE,
            description="Clan creation wizard has been cancelled",
            color=COLOR_ERROR,
        ),
        update=True,
    )


def create_from_name(ctx: ResolvedInteraction) -> Reply:
    """Name modal submitted: validate, charge and create the clan.

    The charge, clan row, leader membership, statistics row and token
    consumption commit together, or not at all.
    """
    session, cfg, event = ctx.session, ctx.cfg, ctx.event
    user_id, guild_id = event.user_id, event.guild_id
    price = cfg.economy.clan_create_price
    symbol = cfg.currency_symbol

    if get_user_clan(session, user_id, guild_id) is not None:
        return error_reply("You are already a member of a clan.")

    wallet = wallet_service.get_or_create_wallet(session, user_id, guild_id)
    if wallet.balance < price:
        return error_reply(
            f"Insufficient funds. Creating a clan costs **{format_currency(price, symbol)}**, "
            f"you have **{format_currency(wallet.balance, symbol)}** in your wallet, "
            f"you need **{format_currency(price - wallet.balance, symbol)}** more to afford it."
        )

    try:
        clan_name = validate_clan_name(session, event.fields.get("name", ""), guild_id)
    except ClanNameError as exc:
        return error_reply(str(exc))

    if not interaction_service.consume(session, ctx.token.id, now=ctx.now):
        return error_reply("This interaction has already been handled or has expired.")

    if wallet_service.try_debit(session, wallet.id, price) is None:
        session.rollback()
        return error_reply(
            f"Insufficient funds. Creating a clan costs **{format_currency(price, symbol)}**."
        )

    clan = Clan(
        guild_id=guild_id,
        name=clan_name.name,
        slug=clan_name.slug,
        join_setting=ClanJoinSetting.OPEN.value,
        abbreviation=suggest_abbreviation(session, clan_name.name, guild_id),
        created_at=ctx.now,
    )
    session.add(clan)
    session.flush()
    session.add(ClanMember(
        clan_id=clan.id,
        guild_id=guild_id,
        user_id=user_id,
        role=ClanMemberRole.LEADER.value,
        joined_at=ctx.now,
    ))
    session.add(ClanStatistics(clan_id=clan.id, total_earned=0, fish_caught=0))
    interaction_service.consume_for_user(
        session, user_id=user_id, guild_id=guild_id, types=WIZARD_TYPES, now=ctx.now
    )
    session.flush()

    logger.info("Clan created: %r (id=%s) by %s in guild %s", clan.name, clan.id, user_id, guild_id)

    payload: ClanNamePromptPayload = ctx.payload
    created = EmbedSpec(
        title="Clan Created",
        description=f"Awesome, **{clan.name}** clan has now been created!",
        color=COLOR_SUCCESS,
    )
    return Reply(
        content="Success!",
        ephemeral=True,
        edits=[MessageEdit(message_id=payload.wizard_message_id, embed=created)],
    )


# ---------------------------------------------------------------------------
# Leave / disband
# ---------------------------------------------------------------------------
def disband_clan(session: Session, clan_id: int) -> None:
    """Delete a clan and everything hanging off it, children first."""
    session.execute(delete(ClanInvitation).where(ClanInvitation.clan_id == clan_id))
    session.execute(delete(ClanBanishment).where(ClanBanishment.clan_id == clan_id))
    session.execute(delete(ClanMember).where(ClanMember.clan_id == clan_id))
    session.execute(delete(ClanStatistics).where(ClanStatistics.clan_id == clan_id))
    session.execute(delete(Clan).where(Clan.id == clan_id))


def leave_clan(
    engine: Engine,
    *,
    guild_id: int,
    user_id: int,
) -> Reply:
    with Session(engine) as session:
        membership = _get_membership(session, user_id, guild_id)
        if membership is None:
            return error_reply("You are not in a clan.")

        clan = session.get(Clan, membership.clan_id)
        if clan is None:
            return error_reply("Clan not found.")

        members = _member_count(session, clan.id)
        if membership.role == ClanMemberRole.LEADER.value and members > 1:
            return error_reply(
                "You cannot leave the clan as the leader with other members in the clan. "
                "If you want to leave the clan, you must first transfer leadership to "
                "another member or kick everyone in the clan."
            )

        joined = discord_timestamp(ensure_utc(membership.joined_at))
        clan_name = clan.name

        if members == 1:
            disband_clan(session, clan.id)
            session.commit()
            logger.info("Clan %r disbanded by %s in guild %s", clan_name, user_id, guild_id)
            return Reply(
                content=(
                    f"<@{user_id}> has __disbanded__ **{clan_name}**. "
                    f"<@{user_id}> joined {joined}"
                ),
            )

        session.execute(
            delete(ClanInvitation).where(
                ClanInvitation.clan_id == clan.id, ClanInvitation.user_id == user_id
            )
        )
        session.delete(membership)
        session.commit()

    logger.info("User %s left clan %r", user_id, clan_name)
    return Reply(content=f"<@{user_id}> has left **{clan_name}**. They joined {joined}")


# ---------------------------------------------------------------------------
# Info
# ---------------------------------------------------------------------------
_ROLE_ORDER = {
    ClanMemberRole.LEADER.value: 0,
    ClanMemberRole.OFFICER.value: 1,
    ClanMemberRole.MEMBER.value: 2,
}


def clan_info(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
) -> Reply:
    with Session(engine) as session:
        clan = get_user_clan(session, user_id, guild_id)
        if clan is None:
            return error_reply("You are not in a clan.")

        members = session.scalars(
            select(ClanMember).where(ClanMember.clan_id == clan.id)
        ).all()
        stats = session.get(ClanStatistics, clan.id)

        roster = "\n".join(
            f"<@{m.user_id}> - {m.role.replace('_', ' ').title()}"
            for m in sorted(members, key=lambda m: (_ROLE_ORDER.get(m.role, 9), m.joined_at))
        )
        title = f"[{clan.abbreviation}] {clan.name}" if clan.abbreviation else clan.name
        embed = EmbedSpec(
            title=title,
            color=COLOR_INFO,
            fields=[
                EmbedField("Level", str(clan.level), inline=True),
                EmbedField("Members", str(len(members)), inline=True),
                EmbedField(
                    "Total earned",
                    format_currency(stats.total_earned if stats else 0, cfg.currency_symbol),
                    inline=True,
                ),
                EmbedField(
                    "Fish caught",
                    format_number(stats.fish_caught if stats else 0),
                    inline=True,
                ),
                EmbedField("Roster", roster or "-"),
            ],
        )
    return Reply(embed=embed)
