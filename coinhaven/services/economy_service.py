"""
coinhaven.services.economy_service — Economy Commands
======================================================

Synchronous handlers behind the economy slash commands (call via
``run_db``) and the shop's select menu.

- gift     — transfer currency to another member
- spawn    — admin: mint currency into your own wallet
- balance  — show your wallet
- fish     — odds-weighted reward with a per-window use limit
- daily    — fixed reward once every 24 hours
- shop     — tool catalogue + purchase menu
"""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coinhaven.constants import (
    COLOR_ERROR,
    COLOR_INFO,
    COLOR_SUCCESS,
    discord_timestamp,
    ensure_utc,
    format_currency,
    parse_amount,
    utcnow,
)
from coinhaven.database.models import (
    ClanStatistics,
    InteractionType,
    InventoryItem,
    Wallet,
    Work,
    WorkType,
)
from coinhaven.engine.fishing import go_fishing, work_title
from coinhaven.engine.payloads import ShopMenuPayload
from coinhaven.services import interaction_service, wallet_service
from coinhaven.services.clan_service import get_user_clan
from coinhaven.services.replies import (
    EmbedField,
    EmbedSpec,
    Reply,
    SelectOption,
    SelectSpec,
    error_reply,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from coinhaven.config import CoinhavenConfig
    from coinhaven.services.interaction_service import ResolvedInteraction

logger = logging.getLogger(__name__)

DAILY_COOLDOWN = timedelta(hours=24)


# ---------------------------------------------------------------------------
# Shop catalogue
# ---------------------------------------------------------------------------
class Tool(enum.StrEnum):
    FISHING_NET = "FISHING_NET"
    TRAWL_NET = "TRAWL_NET"


@dataclass(frozen=True, slots=True)
class ShopTool:
    tool: Tool
    name: str
    emoji: str
    price: int
    extra_fish_uses: int


SHOP_TOOLS: dict[Tool, ShopTool] = {
    Tool.FISHING_NET: ShopTool(Tool.FISHING_NET, "Fishing Net", "\U0001f578️", 75_000, 1),
    Tool.TRAWL_NET: ShopTool(Tool.TRAWL_NET, "Trawl Net", "\U0001f6a2", 400_000, 2),
}


def owned_tools(session: Session, user_id: int, guild_id: int) -> set[Tool]:
    rows = session.scalars(
        select(InventoryItem.tool).where(
            InventoryItem.user_id == user_id, InventoryItem.guild_id == guild_id
        )
    ).all()
    return {Tool(t) for t in rows if t in SHOP_TOOLS}


def record_clan_catch(session: Session, clan_id: int, earned: int) -> None:
    """Bump a clan's fish counter and earnings, creating its stats row if needed."""
    if session.get(ClanStatistics, clan_id) is None:
        session.add(ClanStatistics(clan_id=clan_id, total_earned=0, fish_caught=0))
        session.flush()
    session.execute(
        update(ClanStatistics)
        .where(ClanStatistics.clan_id == clan_id)
        .values(
            fish_caught=ClanStatistics.fish_caught + 1,
            total_earned=ClanStatistics.total_earned + earned,
        )
    )


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------
def guard_economy_channel(cfg: CoinhavenConfig, channel_id: int | None) -> Reply | None:
    """Return an error reply if economy commands are restricted elsewhere."""
    allowed = cfg.economy_channel_ids
    if not allowed or channel_id in allowed:
        return None
    channels = ", ".join(f"<#{cid}>" for cid in allowed)
    return error_reply(f"Economy commands can only be used in {channels}.")


# ---------------------------------------------------------------------------
# /gift
# ---------------------------------------------------------------------------
def gift(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    sender_id: int,
    recipient_id: int,
    recipient_is_bot: bool,
    raw_amount: str,
) -> Reply:
    """Gift money to another member.  ``0`` gifts the entire balance."""
    sender_wallet = wallet_service.create_wallet(engine, sender_id, guild_id)

    amount = parse_amount(raw_amount)
    if amount is None:
        return error_reply(
            "Invalid amount. Use positive integers only. Example: `/gift @user 50k`"
        )
    if amount == 0:
        amount = sender_wallet.balance

    minimum = cfg.economy.gift_minimum
    if amount < minimum:
        return error_reply(f"You can't gift less than {minimum:,}.")
    if recipient_is_bot:
        return error_reply("You can't gift money to a bot.")
    if recipient_id == sender_id:
        return error_reply("You can't gift money to yourself.")
    if recipient_id in cfg.economy.gift_blocked_user_ids:
        return error_reply("You can't gift money to this user.")
    if sender_wallet.balance < amount:
        return error_reply("You don't have enough money in your wallet to gift this amount.")

    remaining = wallet_service.transfer(
        engine,
        guild_id=guild_id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        amount=amount,
    )
    if remaining is None:
        # Balance dropped between the check and the transfer.
        return error_reply("You don't have enough money in your wallet to gift this amount.")

    return Reply(
        content=(
            f"<@{recipient_id}> received **{format_currency(amount, cfg.currency_symbol)}** "
            f"from <@{sender_id}>"
        ),
    )


# ---------------------------------------------------------------------------
# /spawn
# ---------------------------------------------------------------------------
def spawn(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
    raw_amount: str,
) -> Reply:
    amount = parse_amount(raw_amount)
    if not amount:
        return error_reply("Invalid amount. Use positive integers only.")

    wallet_service.deposit(engine, user_id, guild_id, amount)
    logger.info("Spawned %d for user %s in guild %s", amount, user_id, guild_id)
    return Reply(
        content=f"Spawned **{format_currency(amount, cfg.currency_symbol)}** to your wallet.",
    )


# ---------------------------------------------------------------------------
# /balance
# ---------------------------------------------------------------------------
def balance(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
    display_name: str,
) -> Reply:
    wallet = wallet_service.create_wallet(engine, user_id, guild_id)
    embed = EmbedSpec(
        title=f"{display_name}'s Wallet",
        description=f"**{format_currency(wallet.balance, cfg.currency_symbol)}**",
        color=COLOR_INFO,
    )
    return Reply(embed=embed)


# ---------------------------------------------------------------------------
# /fish
# ---------------------------------------------------------------------------
def fish(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
    channel_id: int | None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> Reply:
    """Go fishing.

    A user gets ``fish_uses`` casts (plus tool bonuses) per rolling
    ``fish_cooldown_minutes`` window, counted from the ``work`` journal.
    The work row, the wallet credit and the clan statistics update are one
    transaction.
    """
    guard = guard_economy_channel(cfg, channel_id)
    if guard is not None:
        return guard

    rng = rng or random.Random()
    now = now or utcnow()
    cooldown = timedelta(minutes=cfg.economy.fish_cooldown_minutes)

    with Session(engine) as session:
        allowed = cfg.economy.fish_uses + sum(
            SHOP_TOOLS[t].extra_fish_uses for t in owned_tools(session, user_id, guild_id)
        )
        recent_uses = session.scalars(
            select(Work.created_at)
            .where(
                Work.user_id == user_id,
                Work.guild_id == guild_id,
                Work.type == WorkType.FISH.value,
                Work.created_at >= now - cooldown,
            )
            .order_by(Work.created_at.desc())
            .limit(allowed)
        ).all()

        if len(recent_uses) >= allowed:
            oldest = ensure_utc(recent_uses[-1])
            return error_reply(
                "You scared all the fish away. "
                f"Try your luck {discord_timestamp(oldest + cooldown)}"
            )

        clan = get_user_clan(session, user_id, guild_id)
        result = go_fishing(rng, clan.level if clan else None)

        wallet = wallet_service.get_or_create_wallet(session, user_id, guild_id)
        session.add(Work(user_id=user_id, guild_id=guild_id, type=WorkType.FISH.value, created_at=now))
        wallet_service.increment_balance(session, wallet.id, result.total)

        if clan is not None:
            record_clan_catch(session, clan.id, max(result.total, 0))

        session.commit()

    logger.info(
        "Fish: user %s caught %s (%+d, clan bonus %d)",
        user_id, result.scenario, result.total, result.clan_bonus,
    )

    description = result.message
    if result.multiplier > 0 and result.total > 0:
        percent = f"{result.multiplier * 100:g}%"
        description += (
            f" Clan bonus: **+{format_currency(result.clan_bonus, cfg.currency_symbol)}** ({percent})"
        )

    embed = EmbedSpec(
        title=work_title(result.total),
        description=description,
        color=COLOR_SUCCESS if result.reward > 0 else COLOR_ERROR,
    )
    if len(recent_uses) == allowed - 1:
        embed.description = f"{description}\nNext fish {discord_timestamp(now + cooldown)}"
    else:
        left = allowed - len(recent_uses) - 1
        embed.footer = f"{left} {'use' if left == 1 else 'uses'} left"
    return Reply(embed=embed)


# ---------------------------------------------------------------------------
# /daily
# ---------------------------------------------------------------------------
def daily(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
    now: datetime | None = None,
) -> Reply:
    now = now or utcnow()
    reward = cfg.economy.daily_reward

    with Session(engine) as session:
        last_claim = session.scalar(
            select(func.max(Work.created_at)).where(
                Work.user_id == user_id,
                Work.guild_id == guild_id,
                Work.type == WorkType.DAILY.value,
            )
        )
        if last_claim is not None and ensure_utc(last_claim) + DAILY_COOLDOWN > now:
            next_claim = ensure_utc(last_claim) + DAILY_COOLDOWN
            return error_reply(
                "You already claimed your daily reward. "
                f"Come back {discord_timestamp(next_claim)}"
            )

        wallet = wallet_service.get_or_create_wallet(session, user_id, guild_id)
        session.add(Work(user_id=user_id, guild_id=guild_id, type=WorkType.DAILY.value, created_at=now))
        wallet_service.increment_balance(session, wallet.id, reward)
        session.commit()

    return Reply(
        embed=EmbedSpec(
            title="\U0001f4c5 Daily Reward",
            description=(
                f"You claimed your daily reward of "
                f"**{format_currency(reward, cfg.currency_symbol)}**!"
            ),
            color=COLOR_SUCCESS,
        ),
    )


# ---------------------------------------------------------------------------
# /shop
# ---------------------------------------------------------------------------
def shop_menu(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    guild_name: str,
    user_id: int,
    channel_id: int | None,
    now: datetime | None = None,
) -> Reply:
    """Tool catalogue with a purchase select menu bound to the user."""
    guard = guard_economy_channel(cfg, channel_id)
    if guard is not None:
        return guard

    with Session(engine) as session:
        wallet = wallet_service.get_or_create_wallet(session, user_id, guild_id)
        token = interaction_service.create_token(
            session,
            interaction_type=InteractionType.SHOP_BUY_TOOL_MENU,
            user_id=user_id,
            guild_id=guild_id,
            channel_id=channel_id,
            payload=ShopMenuPayload(wallet_id=wallet.id),
            ttl=timedelta(minutes=cfg.economy.interaction_ttl_minutes),
            now=now,
        )
        token_id = token.id
        session.commit()

    catalogue = "\n".join(
        f"{t.emoji} | {t.name} - {format_currency(t.price, cfg.currency_symbol)}"
        for t in SHOP_TOOLS.values()
    )
    embed = EmbedSpec(
        title=f"{guild_name} Shop - Buy",
        description=f"Buy tools from {guild_name}'s Shop",
        color=COLOR_INFO,
        fields=[EmbedField(name="Tools", value=catalogue)],
    )
    select_menu = SelectSpec(
        token_id=token_id,
        placeholder="Select the item you would like to purchase",
        options=tuple(
            SelectOption(label=t.name, value=t.tool.value, emoji=t.emoji)
            for t in SHOP_TOOLS.values()
        ),
    )
    return Reply(embed=embed, components=[select_menu])


def shop_buy(ctx: ResolvedInteraction) -> Reply:
    """Handle a choice from the shop select menu.

    The menu token is not consumed, so the menu can be reused; a duplicate
    purchase is refused by the inventory's unique constraint.
    """
    session, cfg = ctx.session, ctx.cfg
    symbol = cfg.currency_symbol

    raw_tool = ctx.event.values[0] if ctx.event.values else None
    try:
        item = SHOP_TOOLS[Tool(raw_tool)]
    except ValueError:
        return error_reply("Unknown item. Contact developers.")

    wallet = session.get(Wallet, ctx.payload.wallet_id)
    if wallet is None or wallet.user_id != ctx.event.user_id:
        return error_reply("Wallet not found. Contact developers.")

    if item.tool in owned_tools(session, wallet.user_id, wallet.guild_id):
        return error_reply(f"You already own a {item.name}.")

    remaining = wallet_service.try_debit(session, wallet.id, item.price)
    if remaining is None:
        current = wallet_service.get_balance(session, wallet.id)
        session.rollback()
        return error_reply(
            f"Insufficient funds. The {item.name} costs **{format_currency(item.price, symbol)}**, "
            f"you have **{format_currency(current, symbol)}**."
        )

    try:
        with session.begin_nested():
            session.add(InventoryItem(
                user_id=wallet.user_id,
                guild_id=wallet.guild_id,
                tool=item.tool.value,
                purchased_at=ctx.now,
            ))
    except IntegrityError:
        session.rollback()
        return error_reply(f"You already own a {item.name}.")

    logger.info("Shop: user %s bought %s for %d", wallet.user_id, item.tool, item.price)
    return Reply(
        content=(
            f"You bought a **{item.name}** {item.emoji} for "
            f"**{format_currency(item.price, symbol)}**. "
            f"Remaining: **{format_currency(remaining, symbol)}**"
        ),
        ephemeral=True,
    )
