"""
tests/test_economy_service.py — Economy Command Tests
======================================================
gift / spawn / balance / fish / daily / shop against in-memory SQLite.
Fishing outcomes are pinned by patching ``go_fishing``.
"""

from __future__ import annotations

import dataclasses
import random
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coinhaven.database.models import (
    Clan,
    ClanMember,
    ClanMemberRole,
    ClanStatistics,
    Interaction,
    InventoryItem,
    Wallet,
    Work,
)
from coinhaven.engine.events import ComponentEvent, ComponentKind
from coinhaven.engine.fishing import FishResult, Scenario
from coinhaven.services import economy_service, wallet_service
from coinhaven.services.dispatch import handle_component
from coinhaven.services.economy_service import SHOP_TOOLS, Tool
from conftest import GUILD_ID, NOW

ALICE, BOB = 1, 2


def _balance(engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(Wallet.balance).where(Wallet.user_id == user_id, Wallet.guild_id == GUILD_ID)
        ) or 0


def _gift(engine, cfg, amount: str, *, recipient=BOB, is_bot=False):
    return economy_service.gift(
        engine, cfg,
        guild_id=GUILD_ID, sender_id=ALICE, recipient_id=recipient,
        recipient_is_bot=is_bot, raw_amount=amount,
    )


def _join_clan(engine, user_id: int, level: int = 1) -> int:
    with Session(engine) as session:
        clan = Clan(guild_id=GUILD_ID, name="Anglers", slug="anglers", level=level)
        session.add(clan)
        session.flush()
        session.add(ClanMember(
            clan_id=clan.id, guild_id=GUILD_ID, user_id=user_id,
            role=ClanMemberRole.LEADER.value,
        ))
        session.commit()
        return clan.id


@pytest.fixture
def fixed_catch(monkeypatch):
    """Make every cast land *reward* (clan bonus computed as usual)."""
    def install(reward: int, scenario: Scenario = Scenario.BIG_FISH):
        def fake(rng, clan_level=None):
            multiplier = clan_level / 20 if clan_level and reward >= 0 else 0.0
            return FishResult(
                scenario=scenario,
                message="You caught a big fish! \U0001f41f",
                reward=reward,
                clan_bonus=int(reward * multiplier + 0.5),
                multiplier=multiplier,
            )
        monkeypatch.setattr(economy_service, "go_fishing", fake)
    return install


class TestGift:

    def test_fresh_wallet_cannot_gift_50k(self, db_engine, cfg):
        reply = _gift(db_engine, cfg, "50k")
        assert reply.ephemeral
        assert "enough money" in reply.content

    def test_successful_gift(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 100_000)
        reply = _gift(db_engine, cfg, "50k")
        assert not reply.ephemeral
        assert reply.content == f"<@{BOB}> received **$50,000** from <@{ALICE}>"
        assert _balance(db_engine, ALICE) == 50_000
        assert _balance(db_engine, BOB) == 50_000

    def test_zero_gifts_entire_balance(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 1_234)
        _gift(db_engine, cfg, "0")
        assert _balance(db_engine, ALICE) == 0
        assert _balance(db_engine, BOB) == 1_234

    def test_zero_with_empty_wallet_hits_minimum(self, db_engine, cfg):
        reply = _gift(db_engine, cfg, "0")
        assert "less than 100" in reply.content

    def test_below_minimum(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 1_000)
        reply = _gift(db_engine, cfg, "99")
        assert reply.ephemeral
        assert _balance(db_engine, ALICE) == 1_000

    @pytest.mark.parametrize("amount", ["abc", "-5", "1.5"])
    def test_invalid_amount(self, db_engine, cfg, amount):
        reply = _gift(db_engine, cfg, amount)
        assert reply.ephemeral
        assert "Invalid amount" in reply.content

    def test_cannot_gift_to_bot(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 1_000)
        assert "bot" in _gift(db_engine, cfg, "500", is_bot=True).content

    def test_cannot_gift_to_self(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 1_000)
        assert "yourself" in _gift(db_engine, cfg, "500", recipient=ALICE).content
        assert _balance(db_engine, ALICE) == 1_000

    def test_blocked_recipient(self, db_engine, cfg):
        cfg = dataclasses.replace(
            cfg, economy=dataclasses.replace(cfg.economy, gift_blocked_user_ids=(BOB,))
        )
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 1_000)
        reply = _gift(db_engine, cfg, "500")
        assert "this user" in reply.content
        assert _balance(db_engine, BOB) == 0


class TestSpawnAndBalance:

    def test_spawn_credits_wallet(self, db_engine, cfg):
        reply = economy_service.spawn(
            db_engine, cfg, guild_id=GUILD_ID, user_id=ALICE, raw_amount="1m"
        )
        assert "$1,000,000" in reply.content
        assert _balance(db_engine, ALICE) == 1_000_000

    @pytest.mark.parametrize("amount", ["0", "-1", "lots"])
    def test_spawn_rejects_non_positive(self, db_engine, cfg, amount):
        reply = economy_service.spawn(
            db_engine, cfg, guild_id=GUILD_ID, user_id=ALICE, raw_amount=amount
        )
        assert reply.ephemeral
        assert _balance(db_engine, ALICE) == 0

    def test_balance_embed(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 4_200)
        reply = economy_service.balance(
            db_engine, cfg, guild_id=GUILD_ID, user_id=ALICE, display_name="Alice"
        )
        assert reply.embed.title == "Alice's Wallet"
        assert "$4,200" in reply.embed.description


class TestFish:

    def _fish(self, engine, cfg, now=NOW, channel_id=None):
        return economy_service.fish(
            engine, cfg, guild_id=GUILD_ID, user_id=ALICE,
            channel_id=channel_id, rng=random.Random(0), now=now,
        )

    def test_reward_credited_and_work_logged(self, db_engine, cfg, fixed_catch):
        fixed_catch(3_500)
        reply = self._fish(db_engine, cfg)
        assert _balance(db_engine, ALICE) == 3_500
        assert "big fish" in reply.embed.description
        assert reply.embed.footer == "2 uses left"
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Work)) == 1

    def test_cooldown_after_uses_exhausted(self, db_engine, cfg, fixed_catch):
        fixed_catch(100)
        replies = [self._fish(db_engine, cfg, now=NOW + timedelta(seconds=i)) for i in range(3)]
        assert replies[0].embed.footer == "2 uses left"
        assert replies[1].embed.footer == "1 use left"
        assert "Next fish" in replies[2].embed.description

        blocked = self._fish(db_engine, cfg, now=NOW + timedelta(minutes=5))
        assert blocked.ephemeral
        assert "scared all the fish away" in blocked.content
        assert _balance(db_engine, ALICE) == 300

    def test_window_rolls_over(self, db_engine, cfg, fixed_catch):
        fixed_catch(100)
        for i in range(3):
            self._fish(db_engine, cfg, now=NOW + timedelta(seconds=i))
        later = self._fish(db_engine, cfg, now=NOW + timedelta(minutes=61))
        assert not later.ephemeral
        assert _balance(db_engine, ALICE) == 400

    def test_owned_tools_add_uses(self, db_engine, cfg, fixed_catch):
        fixed_catch(100)
        with Session(db_engine) as session:
            session.add(InventoryItem(user_id=ALICE, guild_id=GUILD_ID, tool=Tool.TRAWL_NET.value))
            session.commit()
        reply = self._fish(db_engine, cfg)
        assert reply.embed.footer == "4 uses left"

    def test_pirates_take_money(self, db_engine, cfg, fixed_catch):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 10_000)
        fixed_catch(-6_000, Scenario.PIRATE_ATTACK)
        reply = self._fish(db_engine, cfg)
        assert _balance(db_engine, ALICE) == 4_000
        assert "Ouch" in reply.embed.title

    def test_clan_bonus_and_statistics(self, db_engine, cfg, fixed_catch):
        clan_id = _join_clan(db_engine, ALICE, level=2)
        fixed_catch(1_000)
        reply = self._fish(db_engine, cfg)
        # level 2 → 10%
        assert _balance(db_engine, ALICE) == 1_100
        assert "Clan bonus: **+$100** (10%)" in reply.embed.description
        with Session(db_engine) as session:
            stats = session.get(ClanStatistics, clan_id)
            assert stats.fish_caught == 1
            assert stats.total_earned == 1_100

    def test_economy_channel_guard(self, db_engine, cfg, fixed_catch):
        fixed_catch(100)
        cfg = dataclasses.replace(cfg, economy_channel_ids=(555,))
        reply = self._fish(db_engine, cfg, channel_id=1)
        assert reply.ephemeral
        assert "<#555>" in reply.content
        assert _balance(db_engine, ALICE) == 0
        assert not self._fish(db_engine, cfg, channel_id=555).ephemeral


class TestDaily:

    def test_claim_once_per_day(self, db_engine, cfg):
        first = economy_service.daily(db_engine, cfg, guild_id=GUILD_ID, user_id=ALICE, now=NOW)
        assert "$10,000" in first.embed.description

        again = economy_service.daily(
            db_engine, cfg, guild_id=GUILD_ID, user_id=ALICE, now=NOW + timedelta(hours=23)
        )
        assert again.ephemeral
        assert _balance(db_engine, ALICE) == 10_000

        next_day = economy_service.daily(
            db_engine, cfg, guild_id=GUILD_ID, user_id=ALICE, now=NOW + timedelta(hours=24)
        )
        assert not next_day.ephemeral
        assert _balance(db_engine, ALICE) == 20_000


class TestShop:

    def _menu(self, engine, cfg):
        return economy_service.shop_menu(
            engine, cfg, guild_id=GUILD_ID, guild_name="Haven",
            user_id=ALICE, channel_id=42, now=NOW,
        )

    def _buy(self, engine, cfg, token_id: str, tool: Tool, user_id: int = ALICE):
        event = ComponentEvent(
            token_id=token_id, kind=ComponentKind.SELECT, user_id=user_id,
            guild_id=GUILD_ID, channel_id=42, values=(tool.value,),
        )
        return handle_component(engine, cfg, event, now=NOW + timedelta(seconds=5))

    def test_menu_lists_tools_and_issues_token(self, db_engine, cfg):
        reply = self._menu(db_engine, cfg)
        menu = reply.components[0]
        assert {o.value for o in menu.options} == {t.value for t in SHOP_TOOLS}
        with Session(db_engine) as session:
            token = session.get(Interaction, menu.token_id)
            assert token.type == "SHOP_BUY_TOOL_MENU"
            assert token.user_id == ALICE

    def test_purchase(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 100_000)
        token_id = self._menu(db_engine, cfg).components[0].token_id

        reply = self._buy(db_engine, cfg, token_id, Tool.FISHING_NET)

        assert "Fishing Net" in reply.content
        assert _balance(db_engine, ALICE) == 25_000
        with Session(db_engine) as session:
            assert session.scalar(select(InventoryItem.tool)) == Tool.FISHING_NET.value

    def test_duplicate_purchase_refused(self, db_engine, cfg):
        wallet_service.deposit(db_engine, ALICE, GUILD_ID, 200_000)
        token_id = self._menu(db_engine, cfg).components[0].token_id
        self._buy(db_engine, cfg, token_id, Tool.FISHING_NET)

        reply = self._buy(db_engine, cfg, token_id, Tool.FISHING_NET)

        assert "already own" in reply.content
        assert _balance(db_engine, ALICE) == 125_000

    def test_insufficient_funds(self, db_engine, cfg):
        token_id = self._menu(db_engine, cfg).components[0].token_id
        reply = self._buy(db_engine, cfg, token_id, Tool.TRAWL_NET)
        assert reply.ephemeral
        assert "Insufficient funds" in reply.content
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(InventoryItem)) == 0

    def test_menu_belongs_to_its_user(self, db_engine, cfg):
        token_id = self._menu(db_engine, cfg).components[0].token_id
        reply = self._buy(db_engine, cfg, token_id, Tool.FISHING_NET, user_id=BOB)
        assert reply.ephemeral
        assert "isn't for you" in reply.content
