"""
coinhaven.services.connect4_service — Wagered Connect-4 Matches
================================================================

Challenge → accept / decline → moves / forfeit, with the wager escrowed
at accept time and paid out in the same transaction that ends the game.

Accept and Decline tokens name each other in their payloads so either
click consumes both.  A move or forfeit consumes every live Move / Forfeit
token of the game.  Whichever click consumes first wins; the other gets
"already handled".

Time limits are enforced lazily: a live game whose ``last_move_at +
move_time`` has passed is ended in favour of the waiting player the next
time anyone displays or acts on it.

Board writes only apply over the state the game was loaded in, so of two
racing actions only one can end a game and pay the pot.
"""

from __future__ import annotations

import logging
import random
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from coinhaven.constants import (
    COLOR_INFO,
    COLOR_RED,
    COLOR_YELLOW,
    discord_timestamp,
    ensure_utc,
    format_currency,
    parse_amount,
    utcnow,
)
from coinhaven.database.models import Connect4Game, Interaction, InteractionType
from coinhaven.engine import connect4
from coinhaven.engine.connect4 import (
    COLUMN_COUNT,
    ROW_COUNT,
    Board,
    Color,
    Connect4Error,
    GameState,
    SlotState,
)
from coinhaven.engine.payloads import Connect4ChallengePayload, Connect4GamePayload
from coinhaven.services import interaction_service, wallet_service
from coinhaven.services.replies import (
    ButtonSpec,
    ButtonStyle,
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

MAX_MOVE_TIME = 24 * 60 * 60

_SLOT_EMOJI = {
    SlotState.EMPTY: "⚫",
    SlotState.RED: "\U0001f534",
    SlotState.YELLOW: "\U0001f7e1",
}
_COLOR_EMOJI = {Color.RED: ":red_circle:", Color.YELLOW: ":yellow_circle:"}
_COLOR_EMBED = {Color.RED: COLOR_RED, Color.YELLOW: COLOR_YELLOW}
_COLUMN_HEADER = "".join(f"{n}️⃣" for n in range(1, COLUMN_COUNT + 1))

ALREADY_HANDLED = "This interaction has already been handled or has expired."
GAME_NOT_FOUND = "Game not found. Contact developers."


def _new_token_ids() -> tuple[str, str]:
    return uuid.uuid4().hex, uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Board helpers
# ---------------------------------------------------------------------------
def render_board_text(board: Board) -> str:
    """Emoji grid, top row first, with column numbers underneath."""
    rows = [
        "".join(_SLOT_EMOJI[board.slot(col, row)] for col in range(1, COLUMN_COUNT + 1))
        for row in reversed(range(ROW_COUNT))
    ]
    return "\n".join([*rows, _COLUMN_HEADER])


def _user_for(game: Connect4Game, color: Color) -> int:
    return game.challenger_id if Color(game.challenger_color) is color else game.opponent_id


def _load_board(game: Connect4Game) -> Board | None:
    try:
        return Board.from_json(game.board)
    except ValidationError:
        logger.exception("Connect-4 game %s has a corrupt board", game.id)
        return None


def _deadline(game: Connect4Game) -> datetime:
    return ensure_utc(game.last_move_at) + timedelta(seconds=game.move_time)


def _save(
    session: Session, game: Connect4Game, board: Board, now: datetime, *, moved: bool = False
) -> bool:
    """Write *board* over the state *game* was loaded in.

    Returns False when another transaction changed the game first.  The
    caller must then neither settle nor answer as if its action landed.
    """
    values = {"board": board.to_json(), "game_state": board.game_state.value}
    if connect4.is_terminal(board.game_state):
        values["ended_at"] = now
    if moved:
        values["last_move_at"] = now
    result = session.execute(
        update(Connect4Game)
        .where(Connect4Game.id == game.id, Connect4Game.game_state == game.game_state)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    session.expire(game)
    return result.rowcount == 1


def settle(session: Session, game: Connect4Game, board: Board) -> None:
    """Pay the pot to the winner, or refund both wagers on a draw."""
    wager = game.wager_amount
    if not wager:
        return
    winner = connect4.winner_color(board.game_state)
    if winner is not None:
        winner_id = _user_for(game, winner)
        wallet = wallet_service.get_or_create_wallet(session, winner_id, game.guild_id)
        wallet_service.increment_balance(session, wallet.id, wager * 2)
        logger.info("Connect-4 game %s: paid %d to %s", game.id, wager * 2, winner_id)
    elif board.game_state is GameState.DRAW:
        for user_id in (game.challenger_id, game.opponent_id):
            wallet = wallet_service.get_or_create_wallet(session, user_id, game.guild_id)
            wallet_service.increment_balance(session, wallet.id, wager)
        logger.info("Connect-4 game %s: draw, refunded %d each", game.id, wager)


def expire_if_timed_out(
    session: Session, game: Connect4Game, board: Board, now: datetime
) -> Board:
    """End a live game whose turn clock ran out.  Returns the current board."""
    if connect4.is_terminal(board.game_state) or now <= _deadline(game):
        return board
    timed_out = connect4.time_out(board)
    if not _save(session, game, timed_out, now):
        logger.info("Connect-4 game %s changed before its time-out was recorded", game.id)
        return _load_board(game) or board
    board = timed_out
    settle(session, game, board)
    logger.info("Connect-4 game %s: %s ran out of time", game.id, board.out_of_time)
    return board


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------
def _describe(game: Connect4Game, board: Board) -> tuple[str, int]:
    if board.forfeit_state is not None:
        loser = _user_for(game, board.forfeit_state)
        winner = _user_for(game, board.forfeit_state.other)
        return f"<@{loser}> forfeited, <@{winner}> wins", _COLOR_EMBED[board.forfeit_state.other]

    if board.out_of_time is not None:
        late = board.out_of_time
        return (
            f"{_COLOR_EMOJI[late.other]} <@{_user_for(game, late)}> ran out of time.\n"
            f"{_COLOR_EMOJI[late]} <@{_user_for(game, late.other)}> wins!"
        ), _COLOR_EMBED[late.other]

    header = f"<@{game.challenger_id}> vs <@{game.opponent_id}>"
    state = board.game_state
    if state in (GameState.RED_TURN, GameState.YELLOW_TURN):
        color = connect4.turn_color(state)
        line = (
            f"Turn: <@{_user_for(game, color)}> {_COLOR_EMOJI[color]} "
            f"{discord_timestamp(_deadline(game))}"
        )
        return f"{header}\n{line}", _COLOR_EMBED[color]

    winner = connect4.winner_color(state)
    if winner is not None:
        return (
            f"{header}\nWinner: <@{_user_for(game, winner)}> {_COLOR_EMOJI[winner]}",
            _COLOR_EMBED[winner],
        )
    return f"{header}\nIt's a draw!", COLOR_INFO


def display(
    session: Session,
    cfg: CoinhavenConfig,
    game: Connect4Game,
    board: Board,
    *,
    now: datetime,
) -> Reply:
    """Embed for *game*; issues fresh Move + Forfeit tokens while it is live."""
    description, color = _describe(game, board)
    embed = EmbedSpec(
        title="Connect 4",
        description=f"{description}\n\n{render_board_text(board)}",
        color=color,
    )
    if game.wager_amount and connect4.winner_color(board.game_state) is not None:
        embed.fields.append(
            EmbedField("Prize", format_currency(game.wager_amount * 2, cfg.currency_symbol))
        )

    if connect4.is_terminal(board.game_state):
        return Reply(embed=embed)

    ttl = timedelta(seconds=game.move_time) + timedelta(
        minutes=cfg.economy.interaction_ttl_minutes
    )
    move_id, forfeit_id = (
        interaction_service.create_token(
            session,
            interaction_type=kind,
            user_id=game.challenger_id,
            guild_id=game.guild_id,
            channel_id=game.channel_id,
            payload=Connect4GamePayload(game_id=game.id),
            ttl=ttl,
            now=now,
        ).id
        for kind in (InteractionType.CONNECT4_MOVE, InteractionType.CONNECT4_FORFEIT)
    )

    move_menu = SelectSpec(
        token_id=move_id,
        placeholder="Make a move",
        options=tuple(
            SelectOption(label=str(n), value=str(n)) for n in range(1, COLUMN_COUNT + 1)
        ),
    )
    forfeit_button = (ButtonSpec(forfeit_id, "Forfeit", ButtonStyle.DANGER),)
    return Reply(embed=embed, components=[move_menu, forfeit_button])


def show_game(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    user_id: int,
    now: datetime | None = None,
) -> Reply:
    """Re-post the user's live game (ending it first if its clock ran out)."""
    now = now or utcnow()
    with Session(engine) as session:
        game = session.scalar(
            select(Connect4Game)
            .where(
                Connect4Game.guild_id == guild_id,
                (Connect4Game.challenger_id == user_id) | (Connect4Game.opponent_id == user_id),
                Connect4Game.game_state.in_([GameState.RED_TURN.value, GameState.YELLOW_TURN.value]),
            )
            .order_by(Connect4Game.created_at.desc())
        )
        if game is None:
            return error_reply("You are not playing a Connect 4 game.")
        board = _load_board(game)
        if board is None:
            return error_reply("Failed to parse board. Contact developers.")

        board = expire_if_timed_out(session, game, board, now)
        reply = display(session, cfg, game, board, now=now)
        session.commit()
    return reply


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------
def challenge(
    engine: Engine,
    cfg: CoinhavenConfig,
    *,
    guild_id: int,
    channel_id: int | None,
    challenger_id: int,
    opponent_id: int,
    opponent_is_bot: bool,
    raw_wager: str | None = None,
    move_time: int | None = None,
    now: datetime | None = None,
) -> Reply:
    """``/connect4``: post a challenge with Accept / Decline for the opponent."""
    wager = parse_amount(raw_wager or "0")
    if wager is None:
        return error_reply("Invalid wager. Use positive integers only.")
    move_time = move_time or cfg.economy.connect4_default_move_time
    if not 0 < move_time <= MAX_MOVE_TIME:
        return error_reply(f"Move time must be between 1 and {MAX_MOVE_TIME} seconds.")
    if opponent_is_bot:
        return error_reply("You can't challenge a bot.")
    if opponent_id == challenger_id:
        return error_reply("You can't challenge yourself.")

    now = now or utcnow()
    symbol = cfg.currency_symbol
    with Session(engine) as session:
        wallet = wallet_service.get_or_create_wallet(session, challenger_id, guild_id)
        if wallet.balance < wager:
            session.commit()
            return error_reply(
                f"You don't have enough money to wager **{format_currency(wager, symbol)}**."
            )

        accept_id, decline_id = _new_token_ids()
        ttl = timedelta(minutes=cfg.economy.interaction_ttl_minutes)
        for token_id, sibling_id, kind in (
            (accept_id, decline_id, InteractionType.CONNECT4_ACCEPT),
            (decline_id, accept_id, InteractionType.CONNECT4_DECLINE),
        ):
            interaction_service.create_token(
                session,
                interaction_type=kind,
                user_id=opponent_id,
                guild_id=guild_id,
                channel_id=channel_id,
                payload=Connect4ChallengePayload(
                    challenger_id=challenger_id,
                    wager=wager,
                    move_time=move_time,
                    sibling_id=sibling_id,
                ),
                ttl=ttl,
                token_id=token_id,
                now=now,
            )
        session.commit()

    lines = [f"<@{challenger_id}> challenged <@{opponent_id}> to a game of Connect 4!"]
    if wager:
        lines.append(f"Wager: **{format_currency(wager, symbol)}** each")
    lines.append(f"Move time: **{move_time}s**")
    embed = EmbedSpec(title="Connect 4", description="\n".join(lines), color=COLOR_INFO)
    buttons = (
        ButtonSpec(accept_id, "Accept", ButtonStyle.SUCCESS),
        ButtonSpec(decline_id, "Decline", ButtonStyle.DANGER),
    )
    return Reply(content=f"<@{opponent_id}>", embed=embed, components=[buttons])


def _claim_pair(ctx: ResolvedInteraction, sibling_id: str) -> bool:
    """Consume this token and its sibling.  False if another click got here first."""
    if not interaction_service.consume(ctx.session, ctx.token.id, now=ctx.now):
        return False
    interaction_service.consume(ctx.session, sibling_id, now=ctx.now)
    return True


def _claim_game(ctx: ResolvedInteraction, game: Connect4Game) -> bool:
    """Consume this token, then every other live Move / Forfeit token of *game*.

    Re-posted boards (``/connect4-game``) leave older controls around; a
    state change retires all of them.
    """
    if not interaction_service.consume(ctx.session, ctx.token.id, now=ctx.now):
        return False
    live = ctx.session.scalars(
        select(Interaction).where(
            Interaction.type.in_([
                InteractionType.CONNECT4_MOVE.value,
                InteractionType.CONNECT4_FORFEIT.value,
            ]),
            Interaction.user_id == game.challenger_id,
            Interaction.guild_id == game.guild_id,
            Interaction.consumed_at.is_(None),
        )
    ).all()
    interaction_service.consume_ids(
        ctx.session,
        [t.id for t in live if (t.payload or {}).get("game_id") == game.id],
        now=ctx.now,
    )
    return True


def accept(ctx: ResolvedInteraction) -> Reply:
    """Opponent accepted: escrow both wagers and start the game."""
    session, event = ctx.session, ctx.event
    payload: Connect4ChallengePayload = ctx.payload
    opponent_id, guild_id = event.user_id, event.guild_id

    if not _claim_pair(ctx, payload.sibling_id):
        return error_reply(ALREADY_HANDLED)

    symbol = ctx.cfg.currency_symbol
    if payload.wager:
        challenger_wallet = wallet_service.get_or_create_wallet(
            session, payload.challenger_id, guild_id
        )
        opponent_wallet = wallet_service.get_or_create_wallet(session, opponent_id, guild_id)
        if wallet_service.try_debit(session, opponent_wallet.id, payload.wager) is None:
            session.rollback()
            return error_reply(
                f"You don't have enough money to match the "
                f"**{format_currency(payload.wager, symbol)}** wager."
            )
        if wallet_service.try_debit(session, challenger_wallet.id, payload.wager) is None:
            session.rollback()
            return error_reply(
                f"<@{payload.challenger_id}> no longer has enough money for the wager."
            )

    board = Board()
    game = Connect4Game(
        guild_id=guild_id,
        channel_id=event.channel_id,
        challenger_id=payload.challenger_id,
        opponent_id=opponent_id,
        challenger_color=ctx.rng.choice(list(Color)).value,
        board=board.to_json(),
        game_state=board.game_state.value,
        wager_amount=payload.wager,
        move_time=payload.move_time,
        last_move_at=ctx.now,
        created_at=ctx.now,
    )
    session.add(game)
    session.flush()
    logger.info(
        "Connect-4 game %s started: %s vs %s, wager %d",
        game.id, game.challenger_id, game.opponent_id, game.wager_amount,
    )

    reply = display(session, ctx.cfg, game, board, now=ctx.now)
    reply.update = True
    return reply


def decline(ctx: ResolvedInteraction) -> Reply:
    payload: Connect4ChallengePayload = ctx.payload
    if not _claim_pair(ctx, payload.sibling_id):
        return error_reply(ALREADY_HANDLED)
    return Reply(
        embed=EmbedSpec(
            title="Connect 4",
            description=(
                f"<@{ctx.event.user_id}> declined the challenge from "
                f"<@{payload.challenger_id}>."
            ),
            color=COLOR_RED,
        ),
        update=True,
    )


# ---------------------------------------------------------------------------
# Move / forfeit
# ---------------------------------------------------------------------------
def _load_game(ctx: ResolvedInteraction) -> tuple[Connect4Game, Board] | Reply:
    payload: Connect4GamePayload = ctx.payload
    game = ctx.session.get(Connect4Game, payload.game_id)
    if game is None:
        return error_reply(GAME_NOT_FOUND)
    board = _load_board(game)
    if board is None:
        return error_reply("Failed to parse board. Contact developers.")
    return game, board


def _timed_out_reply(ctx: ResolvedInteraction, game: Connect4Game, board: Board) -> Reply:
    """The clock ran out before this action: end the game and show it."""
    if not _claim_game(ctx, game):
        ctx.session.rollback()
        return error_reply(ALREADY_HANDLED)
    reply = display(ctx.session, ctx.cfg, game, board, now=ctx.now)
    reply.clear_source = True
    return reply


def move(ctx: ResolvedInteraction) -> Reply:
    """A column was picked from the move menu.

    Turn holder: the disc is dropped and the game advanced.  Anyone else:
    a valid column is posted as a public suggestion, nothing changes.
    """
    loaded = _load_game(ctx)
    if isinstance(loaded, Reply):
        return loaded
    game, board = loaded
    user_id = ctx.event.user_id

    if connect4.is_terminal(board.game_state):
        return error_reply("This game has ended.")
    current = expire_if_timed_out(ctx.session, game, board, ctx.now)
    if current is not board:
        return _timed_out_reply(ctx, game, current)

    raw_column = ctx.event.values[0] if ctx.event.values else None
    try:
        column = connect4.parse_column(raw_column)
    except Connect4Error:
        return error_reply("Invalid column. Contact developers.")

    if not connect4.holds_turn(
        user_id, game.challenger_id, game.opponent_id, game.challenger_color, board.game_state
    ):
        try:
            connect4.check_column(board, column)
        except Connect4Error as exc:
            return error_reply(str(exc))
        logger.debug("Connect-4 game %s: %s suggests %d", game.id, user_id, column)
        return Reply(content=f"<@{user_id}> suggests **{column}**")

    try:
        board = connect4.play(board, column)
    except Connect4Error as exc:
        return error_reply(str(exc))

    if not _claim_game(ctx, game):
        return error_reply(ALREADY_HANDLED)

    if not _save(ctx.session, game, board, ctx.now, moved=True):
        ctx.session.rollback()
        return error_reply(ALREADY_HANDLED)
    if connect4.is_terminal(board.game_state):
        settle(ctx.session, game, board)
        logger.info("Connect-4 game %s finished: %s", game.id, board.game_state)

    reply = display(ctx.session, ctx.cfg, game, board, now=ctx.now)
    reply.clear_source = True
    return reply


def forfeit(ctx: ResolvedInteraction) -> Reply:
    loaded = _load_game(ctx)
    if isinstance(loaded, Reply):
        return loaded
    game, board = loaded

    color = connect4.player_color(
        ctx.event.user_id, game.challenger_id, game.opponent_id, game.challenger_color
    )
    if color is None:
        return error_reply("You are not a player in this game.")
    if connect4.is_terminal(board.game_state):
        return error_reply("This game has ended.")
    current = expire_if_timed_out(ctx.session, game, board, ctx.now)
    if current is not board:
        return _timed_out_reply(ctx, game, current)

    if not _claim_game(ctx, game):
        return error_reply(ALREADY_HANDLED)

    board = connect4.forfeit(board, color)
    if not _save(ctx.session, game, board, ctx.now):
        ctx.session.rollback()
        return error_reply(ALREADY_HANDLED)
    settle(ctx.session, game, board)
    logger.info("Connect-4 game %s: %s forfeited", game.id, ctx.event.user_id)

    reply = display(ctx.session, ctx.cfg, game, board, now=ctx.now)
    reply.clear_source = True
    return reply
