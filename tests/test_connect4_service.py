"""
tests/test_connect4_service.py — Connect-4 Match Flow Tests
============================================================
Challenge → accept / decline → moves → win / forfeit / time-out, driven
through ``handle_component``.  The challenger is always dealt RED unless
a test says otherwise, so RED (the first mover) is the challenger.
"""

from __future__ import annotations

import random
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coinhaven.database.models import Connect4Game, Interaction, Wallet
from coinhaven.engine.connect4 import Board, Color, GameState, SlotState
from coinhaven.engine.events import ComponentEvent, ComponentKind
from coinhaven.services import connect4_service, wallet_service
from coinhaven.services.dispatch import handle_component
from conftest import GUILD_ID, NOW

CHALLENGER, OPPONENT, SPECTATOR = 1, 2, 3
ACCEPTED_AT = NOW + timedelta(seconds=10)


class _DealColor(random.Random):
    """Random source whose ``choice`` always deals the challenger *color*."""

    def __init__(self, color: Color):
        super().__init__(0)
        self.color = color

    def choice(self, seq):
        return self.color


def _balance(engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(Wallet.balance).where(Wallet.user_id == user_id, Wallet.guild_id == GUILD_ID)
        ) or 0


def _game(engine) -> Connect4Game:
    with Session(engine) as session:
        return session.scalar(select(Connect4Game))


def _board(engine) -> Board:
    return Board.from_json(_game(engine).board)


def _challenge(engine, cfg, *, wager=None, move_time=None, opponent=OPPONENT, is_bot=False):
    return connect4_service.challenge(
        engine, cfg,
        guild_id=GUILD_ID, channel_id=42,
        challenger_id=CHALLENGER, opponent_id=opponent, opponent_is_bot=is_bot,
        raw_wager=wager, move_time=move_time, now=NOW,
    )


def _press(engine, cfg, token_id, user_id, *, kind=ComponentKind.BUTTON, values=(),
           now=ACCEPTED_AT, color=Color.RED):
    event = ComponentEvent(
        token_id=token_id, kind=kind, user_id=user_id,
        guild_id=GUILD_ID, channel_id=42, values=values,
    )
    return handle_component(engine, cfg, event, now=now, rng=_DealColor(color))


def _pick(engine, cfg, reply, user_id, column, *, now=None):
    menu = reply.components[0]
    return _press(
        engine, cfg, menu.token_id, user_id,
        kind=ComponentKind.SELECT, values=(str(column),),
        now=now or ACCEPTED_AT + timedelta(seconds=5),
    )


def _forfeit(engine, cfg, reply, user_id, *, now=None):
    (button,) = reply.components[1]
    return _press(engine, cfg, button.token_id, user_id, now=now or ACCEPTED_AT + timedelta(seconds=5))


def _start(engine, cfg, *, wager=None, color=Color.RED, move_time=None):
    accept, _decline = _challenge(engine, cfg, wager=wager, move_time=move_time).components[0]
    return _press(engine, cfg, accept.token_id, OPPONENT, color=color)


@pytest.fixture
def funded(db_engine):
    for user_id in (CHALLENGER, OPPONENT):
        wallet_service.deposit(db_engine, user_id, GUILD_ID, 5_000)
    return db_engine


class TestRenderBoard:

    def test_empty_board(self):
        lines = connect4_service.render_board_text(Board()).splitlines()
        assert len(lines) == 7
        assert lines[0] == "⚫" * 7
        assert lines[-1].startswith("1️⃣")

    def test_bottom_row_is_last(self):
        board = Board(columns=((Color.RED,), (), (), (), (), (), ()), game_state=GameState.YELLOW_TURN)
        lines = connect4_service.render_board_text(board).splitlines()
        assert lines[5].startswith("\U0001f534")
        assert lines[4] == "⚫" * 7


class TestChallenge:

    def test_posts_challenge_for_opponent(self, funded, cfg):
        reply = _challenge(funded, cfg, wager="1k", move_time=120)

        assert reply.content == f"<@{OPPONENT}>"
        assert "Wager: **$1,000** each" in reply.embed.description
        assert "**120s**" in reply.embed.description
        accept, decline = reply.components[0]
        assert (accept.label, decline.label) == ("Accept", "Decline")
        with Session(funded) as session:
            token = session.get(Interaction, accept.token_id)
            assert token.user_id == OPPONENT
            assert token.payload["sibling_id"] == decline.token_id

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"opponent": CHALLENGER}, "yourself"),
            ({"is_bot": True}, "bot"),
            ({"wager": "lots"}, "Invalid wager"),
            ({"move_time": 86_401}, "Move time"),
            ({"move_time": -5}, "Move time"),
            ({"wager": "10k"}, "enough money"),
        ],
    )
    def test_rejected(self, funded, cfg, kwargs, message):
        reply = _challenge(funded, cfg, **kwargs)
        assert reply.ephemeral
        assert message in reply.content
        with Session(funded) as session:
            assert session.scalar(select(func.count()).select_from(Interaction)) == 0


class TestAcceptDecline:

    def test_accept_escrows_and_starts(self, funded, cfg):
        accept, decline = _challenge(funded, cfg, wager="1k").components[0]

        reply = _press(funded, cfg, accept.token_id, OPPONENT)

        assert reply.update
        assert reply.embed.title == "Connect 4"
        assert f"Turn: <@{CHALLENGER}>" in reply.embed.description
        menu, (forfeit_button,) = reply.components
        assert [o.value for o in menu.options] == [str(n) for n in range(1, 8)]
        assert forfeit_button.label == "Forfeit"

        assert _balance(funded, CHALLENGER) == 4_000
        assert _balance(funded, OPPONENT) == 4_000
        game = _game(funded)
        assert game.wager_amount == 1_000
        assert game.game_state == GameState.RED_TURN.value

        stale = _press(funded, cfg, decline.token_id, OPPONENT)
        assert stale.update
        assert "already been handled" in stale.content

    def test_only_opponent_may_accept(self, funded, cfg):
        accept, _ = _challenge(funded, cfg).components[0]
        reply = _press(funded, cfg, accept.token_id, CHALLENGER)
        assert "isn't for you" in reply.content
        assert _game(funded) is None

    def test_opponent_cannot_match_wager(self, funded, cfg):
        wallet_service.deposit(funded, CHALLENGER, GUILD_ID, 5_000)
        accept, _ = _challenge(funded, cfg, wager="8k").components[0]

        reply = _press(funded, cfg, accept.token_id, OPPONENT)

        assert reply.ephemeral
        assert "match the **$8,000** wager" in reply.content
        assert _balance(funded, CHALLENGER) == 10_000
        assert _balance(funded, OPPONENT) == 5_000
        assert _game(funded) is None

    def test_challenger_spent_the_wager_meanwhile(self, funded, cfg):
        accept, _ = _challenge(funded, cfg, wager="5k").components[0]
        wallet_service.transfer(
            funded, guild_id=GUILD_ID, sender_id=CHALLENGER, recipient_id=SPECTATOR, amount=1_000
        )

        reply = _press(funded, cfg, accept.token_id, OPPONENT)

        assert "no longer has enough money" in reply.content
        assert _balance(funded, OPPONENT) == 5_000
        assert _game(funded) is None

    def test_decline(self, funded, cfg):
        accept, decline = _challenge(funded, cfg).components[0]

        reply = _press(funded, cfg, decline.token_id, OPPONENT)

        assert reply.update
        assert reply.embed.description == (
            f"<@{OPPONENT}> declined the challenge from <@{CHALLENGER}>."
        )
        assert _press(funded, cfg, accept.token_id, OPPONENT).update
        assert _game(funded) is None


class TestMove:

    def test_turn_holder_drops_disc(self, funded, cfg):
        started = _start(funded, cfg)

        reply = _pick(funded, cfg, started, CHALLENGER, 3)

        assert reply.clear_source
        board = _board(funded)
        assert board.game_state is GameState.YELLOW_TURN
        assert board.slot(3, 0) is SlotState.RED
        assert f"Turn: <@{OPPONENT}>" in reply.embed.description
        assert reply.components[0].token_id != started.components[0].token_id

    def test_yellow_challenger_waits(self, funded, cfg):
        started = _start(funded, cfg, color=Color.YELLOW)
        assert f"Turn: <@{OPPONENT}>" in started.embed.description

        reply = _pick(funded, cfg, started, CHALLENGER, 4)

        assert reply.content == f"<@{CHALLENGER}> suggests **4**"
        assert _board(funded).move_count == 0

    def test_spectator_suggestion_changes_nothing(self, funded, cfg):
        started = _start(funded, cfg)

        reply = _pick(funded, cfg, started, SPECTATOR, 4)

        assert reply.content == f"<@{SPECTATOR}> suggests **4**"
        assert not reply.ephemeral
        assert _board(funded).move_count == 0
        # The menu is still live for the real move.
        assert _pick(funded, cfg, started, CHALLENGER, 4).clear_source

    def test_spent_menu_is_stale(self, funded, cfg):
        started = _start(funded, cfg)
        _pick(funded, cfg, started, CHALLENGER, 1)

        again = _pick(funded, cfg, started, OPPONENT, 2)
        assert again.update
        assert "already been handled" in again.content

        forfeit = _forfeit(funded, cfg, started, OPPONENT)
        assert forfeit.update
        assert _board(funded).game_state is GameState.YELLOW_TURN

    def test_invalid_column(self, funded, cfg):
        started = _start(funded, cfg)
        reply = _pick(funded, cfg, started, CHALLENGER, 9)
        assert reply.ephemeral
        assert "Invalid column" in reply.content

    def test_win_pays_the_pot(self, funded, cfg):
        reply = _start(funded, cfg, wager="1k")
        for user_id, column in [
            (CHALLENGER, 1), (OPPONENT, 2),
            (CHALLENGER, 1), (OPPONENT, 2),
            (CHALLENGER, 1), (OPPONENT, 2),
            (CHALLENGER, 1),
        ]:
            reply = _pick(funded, cfg, reply, user_id, column)

        assert _board(funded).game_state is GameState.RED_WIN
        assert f"Winner: <@{CHALLENGER}>" in reply.embed.description
        assert reply.embed.fields[0].value == "$2,000"
        assert reply.components == []
        assert _balance(funded, CHALLENGER) == 6_000
        assert _balance(funded, OPPONENT) == 4_000
        assert _game(funded).ended_at is not None


class TestForfeit:

    def test_forfeit_pays_the_other_player(self, funded, cfg):
        started = _start(funded, cfg, wager="2k")

        reply = _forfeit(funded, cfg, started, OPPONENT)

        assert reply.clear_source
        assert reply.embed.description.startswith(
            f"<@{OPPONENT}> forfeited, <@{CHALLENGER}> wins"
        )
        assert _board(funded).game_state is GameState.RED_WIN
        assert _balance(funded, CHALLENGER) == 7_000
        assert _balance(funded, OPPONENT) == 3_000

    def test_spectator_cannot_forfeit(self, funded, cfg):
        started = _start(funded, cfg)
        reply = _forfeit(funded, cfg, started, SPECTATOR)
        assert reply.content == "You are not a player in this game."
        assert _board(funded).game_state is GameState.RED_TURN


class TestTimeout:

    def test_late_move_ends_game(self, funded, cfg):
        started = _start(funded, cfg, wager="1k", move_time=60)

        reply = _pick(
            funded, cfg, started, CHALLENGER, 1, now=ACCEPTED_AT + timedelta(seconds=61)
        )

        assert reply.clear_source
        assert "ran out of time" in reply.embed.description
        board = _board(funded)
        assert board.out_of_time is Color.RED
        assert board.game_state is GameState.YELLOW_WIN
        assert board.move_count == 0
        assert _balance(funded, OPPONENT) == 6_000

    def test_move_just_inside_deadline(self, funded, cfg):
        started = _start(funded, cfg, move_time=60)
        _pick(funded, cfg, started, CHALLENGER, 1, now=ACCEPTED_AT + timedelta(seconds=60))
        assert _board(funded).game_state is GameState.YELLOW_TURN

    def test_show_game_expires_stale_game(self, funded, cfg):
        _start(funded, cfg, wager="1k", move_time=60)

        reply = connect4_service.show_game(
            funded, cfg, guild_id=GUILD_ID, user_id=OPPONENT,
            now=ACCEPTED_AT + timedelta(minutes=5),
        )

        assert "ran out of time" in reply.embed.description
        assert reply.components == []
        assert _balance(funded, OPPONENT) == 6_000
        again = connect4_service.show_game(
            funded, cfg, guild_id=GUILD_ID, user_id=OPPONENT,
            now=ACCEPTED_AT + timedelta(minutes=6),
        )
        assert again.content == "You are not playing a Connect 4 game."

    def test_concurrent_time_outs_pay_once(self, funded, cfg):
        _start(funded, cfg, wager="1k", move_time=60)
        late = ACCEPTED_AT + timedelta(minutes=5)

        sessions = [Session(funded, expire_on_commit=False) for _ in range(2)]
        loaded = []
        for session in sessions:
            game = session.scalar(select(Connect4Game))
            loaded.append((game, Board.from_json(game.board)))
            session.commit()

        results = []
        for session, (game, board) in zip(sessions, loaded):
            results.append(connect4_service.expire_if_timed_out(session, game, board, late))
            session.commit()
            session.close()

        assert [b.game_state for b in results] == [GameState.YELLOW_WIN] * 2
        assert _balance(funded, OPPONENT) == 6_000
        assert _balance(funded, CHALLENGER) == 4_000

    def test_show_game_time_out_beats_stale_move(self, funded, cfg):
        _start(funded, cfg, wager="1k", move_time=60)
        late = ACCEPTED_AT + timedelta(minutes=5)

        with Session(funded, expire_on_commit=False) as session:
            game = session.scalar(select(Connect4Game))
            board = Board.from_json(game.board)
            session.commit()

            connect4_service.show_game(funded, cfg, guild_id=GUILD_ID, user_id=OPPONENT, now=late)
            current = connect4_service.expire_if_timed_out(session, game, board, late)
            session.commit()

        assert current.game_state is GameState.YELLOW_WIN
        assert _balance(funded, OPPONENT) == 6_000


class TestShowGame:

    def test_no_game(self, db_engine, cfg):
        reply = connect4_service.show_game(db_engine, cfg, guild_id=GUILD_ID, user_id=CHALLENGER)
        assert reply.ephemeral

    def test_reposts_with_fresh_controls(self, funded, cfg):
        started = _start(funded, cfg)

        reply = connect4_service.show_game(
            funded, cfg, guild_id=GUILD_ID, user_id=CHALLENGER,
            now=ACCEPTED_AT + timedelta(seconds=30),
        )

        assert reply.components[0].token_id != started.components[0].token_id
        moved = _pick(funded, cfg, reply, CHALLENGER, 5, now=ACCEPTED_AT + timedelta(seconds=40))
        assert moved.clear_source

        # The original board's controls were retired by the move too.
        stale = _forfeit(funded, cfg, started, OPPONENT, now=ACCEPTED_AT + timedelta(seconds=50))
        assert stale.update
        assert "already been handled" in stale.content
        assert _board(funded).game_state is GameState.YELLOW_TURN


class TestSettle:

    def test_draw_refunds_both(self, db_session):
        game = Connect4Game(
            guild_id=GUILD_ID, challenger_id=CHALLENGER, opponent_id=OPPONENT,
            challenger_color=Color.RED.value, board=Board().to_json(),
            game_state=GameState.DRAW.value, wager_amount=750,
        )
        db_session.add(game)
        db_session.flush()

        connect4_service.settle(db_session, game, Board(game_state=GameState.DRAW))

        for user_id in (CHALLENGER, OPPONENT):
            assert db_session.scalar(
                select(Wallet.balance).where(Wallet.user_id == user_id)
            ) == 750

    def test_no_wager_moves_nothing(self, db_session):
        game = Connect4Game(
            guild_id=GUILD_ID, challenger_id=CHALLENGER, opponent_id=OPPONENT,
            challenger_color=Color.RED.value, board=Board().to_json(),
            game_state=GameState.RED_WIN.value, wager_amount=0,
        )
        db_session.add(game)
        db_session.flush()

        connect4_service.settle(db_session, game, Board(game_state=GameState.RED_WIN))

        assert db_session.scalar(select(func.count()).select_from(Wallet)) == 0
