"""
coinhaven.engine.connect4 — Connect-4 Board Logic
==================================================

Pure functions over an immutable :class:`Board`.  No Discord I/O and no
database I/O: handlers load a board, call into this module, and persist
the returned board themselves.

Geometry is 7 columns × 6 rows.  Each column stores its discs bottom→top,
so ``board.columns[c][0]`` is the lowest slot of column ``c + 1``.
Columns are identified ``1..7`` at the boundary.

Pipeline for a move::

    make_move(board, column) → calculate_winner(board) → new Board
"""

from __future__ import annotations

import enum
import logging

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

COLUMN_COUNT = 7
ROW_COUNT = 6
CONNECT = 4

__all__ = [
    "COLUMN_COUNT",
    "ROW_COUNT",
    "Board",
    "Color",
    "ColumnFullError",
    "Connect4Error",
    "GameOverError",
    "GameState",
    "InvalidColumnError",
    "SlotState",
    "calculate_winner",
    "check_column",
    "forfeit",
    "holds_turn",
    "is_terminal",
    "make_move",
    "parse_column",
    "play",
    "player_color",
    "time_out",
    "winner_color",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Color(enum.StrEnum):
    RED = "RED"
    YELLOW = "YELLOW"

    @property
    def other(self) -> Color:
        return Color.YELLOW if self is Color.RED else Color.RED


class SlotState(enum.StrEnum):
    EMPTY = "EMPTY"
    RED = "RED"
    YELLOW = "YELLOW"


class GameState(enum.StrEnum):
    RED_TURN = "RED_TURN"
    YELLOW_TURN = "YELLOW_TURN"
    RED_WIN = "RED_WIN"
    YELLOW_WIN = "YELLOW_WIN"
    DRAW = "DRAW"


TERMINAL_STATES: frozenset[GameState] = frozenset(
    {GameState.RED_WIN, GameState.YELLOW_WIN, GameState.DRAW}
)

_TURN_STATE = {Color.RED: GameState.RED_TURN, Color.YELLOW: GameState.YELLOW_TURN}
_WIN_STATE = {Color.RED: GameState.RED_WIN, Color.YELLOW: GameState.YELLOW_WIN}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class Connect4Error(Exception):
    """Base class; ``str(exc)`` is safe to show to the user."""


class InvalidColumnError(Connect4Error):
    def __init__(self, column: object) -> None:
        super().__init__(f"Invalid column {column!r}. Pick a column from 1 to {COLUMN_COUNT}.")
        self.column = column


class ColumnFullError(Connect4Error):
    def __init__(self, column: int) -> None:
        super().__init__(f"Column {column} is full. Pick another column.")
        self.column = column


class GameOverError(Connect4Error):
    def __init__(self) -> None:
        super().__init__("This game has ended.")


# ---------------------------------------------------------------------------
# Board
# ---------------------------------------------------------------------------
def _empty_columns() -> tuple[tuple[Color, ...], ...]:
    return tuple(() for _ in range(COLUMN_COUNT))


class Board(BaseModel):
    """Immutable board snapshot, serialized into ``connect4_games.board``."""

    model_config = ConfigDict(frozen=True)

    columns: tuple[tuple[Color, ...], ...] = Field(default_factory=_empty_columns)
    game_state: GameState = GameState.RED_TURN
    forfeit_state: Color | None = None
    out_of_time: Color | None = None
    last_move: tuple[int, int] | None = None  # (column id, row)

    @model_validator(mode="after")
    def _check_geometry(self) -> Board:
        if len(self.columns) != COLUMN_COUNT:
            raise ValueError(f"board must have {COLUMN_COUNT} columns")
        if any(len(col) > ROW_COUNT for col in self.columns):
            raise ValueError(f"a column holds at most {ROW_COUNT} discs")

        # Red moves first, so red leads by at most one disc.
        red = sum(col.count(Color.RED) for col in self.columns)
        yellow = sum(col.count(Color.YELLOW) for col in self.columns)
        if red - yellow not in (0, 1):
            raise ValueError("disc counts are inconsistent with alternating turns")
        if self.game_state is GameState.RED_TURN and red != yellow:
            raise ValueError("RED_TURN requires equal disc counts")
        if self.game_state is GameState.YELLOW_TURN and red != yellow + 1:
            raise ValueError("YELLOW_TURN requires red to lead by one disc")
        return self

    # -- convenience --------------------------------------------------------
    @property
    def move_count(self) -> int:
        return sum(len(col) for col in self.columns)

    @property
    def is_full(self) -> bool:
        return all(len(col) == ROW_COUNT for col in self.columns)

    def height(self, column: int) -> int:
        """Number of discs in column ``column`` (1-based)."""
        return len(self.columns[column - 1])

    def slot(self, column: int, row: int) -> SlotState:
        """State of the slot at ``column`` (1-based), ``row`` (0 = bottom)."""
        col = self.columns[column - 1]
        if row < len(col):
            return SlotState(col[row].value)
        return SlotState.EMPTY

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> Board:
        """Decode and validate a stored board.

        Raises :class:`pydantic.ValidationError` for malformed input.
        """
        return cls.model_validate_json(raw)


# ---------------------------------------------------------------------------
# State helpers
# ---------------------------------------------------------------------------
def is_terminal(state: GameState | str) -> bool:
    return GameState(state) in TERMINAL_STATES


def turn_color(state: GameState) -> Color:
    """Colour whose turn it is.  Raises :class:`GameOverError` if terminal."""
    if state is GameState.RED_TURN:
        return Color.RED
    if state is GameState.YELLOW_TURN:
        return Color.YELLOW
    raise GameOverError()


def winner_color(state: GameState | str) -> Color | None:
    state = GameState(state)
    if state is GameState.RED_WIN:
        return Color.RED
    if state is GameState.YELLOW_WIN:
        return Color.YELLOW
    return None


def win_state(color: Color) -> GameState:
    return _WIN_STATE[color]


# ---------------------------------------------------------------------------
# Move validation & application
# ---------------------------------------------------------------------------
def parse_column(raw: object) -> int:
    """Turn a select-menu value (``"3"``) or int into a column id 1..7."""
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise InvalidColumnError(raw)
    try:
        column = int(raw)
    except ValueError:
        raise InvalidColumnError(raw) from None
    if not 1 <= column <= COLUMN_COUNT:
        raise InvalidColumnError(raw)
    return column


def check_column(board: Board, column: object) -> int:
    """Validate that a disc could be dropped in *column*.

    Returns the parsed column id.  Does not look at whose turn it is, so it
    also validates suggestions from non-turn-holders.
    """
    col = parse_column(column)
    if board.height(col) >= ROW_COUNT:
        raise ColumnFullError(col)
    return col


def make_move(board: Board, column: object) -> Board:
    """Drop the current colour's disc in *column*.

    The returned board still carries the mover's turn state; pass it to
    :func:`calculate_winner` to resolve the outcome.
    """
    color = turn_color(board.game_state)
    col = check_column(board, column)

    row = board.height(col)
    columns = list(board.columns)
    columns[col - 1] = (*columns[col - 1], color)
    return board.model_copy(update={"columns": tuple(columns), "last_move": (col, row)})


def _has_line(board: Board, color: Color) -> bool:
    cells = {
        (c, r)
        for c, col in enumerate(board.columns)
        for r, disc in enumerate(col)
        if disc is color
    }
    for c, r in cells:
        for dc, dr in ((1, 0), (0, 1), (1, 1), (1, -1)):
            if all((c + dc * i, r + dr * i) in cells for i in range(1, CONNECT)):
                return True
    return False


def calculate_winner(board: Board) -> Board:
    """Resolve the board after a move by the colour whose turn it holds.

    Only the mover can complete a line: a win is only ever awarded to
    the colour that just moved.  A full board without a line is a draw;
    otherwise the turn passes to the other colour.
    """
    mover = turn_color(board.game_state)
    if _has_line(board, mover):
        state = win_state(mover)
    elif board.is_full:
        state = GameState.DRAW
    else:
        state = _TURN_STATE[mover.other]
    return board.model_copy(update={"game_state": state})


def play(board: Board, column: object) -> Board:
    """Move and resolve in one step."""
    return calculate_winner(make_move(board, column))


# ---------------------------------------------------------------------------
# Forfeit / time-out
# ---------------------------------------------------------------------------
def forfeit(board: Board, color: Color) -> Board:
    """*color* concedes; the other colour wins.

    The caller must ensure the board is not already terminal.
    """
    return board.model_copy(
        update={"forfeit_state": color, "game_state": win_state(color.other)}
    )


def time_out(board: Board) -> Board:
    """The colour holding the turn ran out of time; the other colour wins."""
    color = turn_color(board.game_state)
    return board.model_copy(
        update={"out_of_time": color, "game_state": win_state(color.other)}
    )


# ---------------------------------------------------------------------------
# Turn / ownership gate
# ---------------------------------------------------------------------------
def player_color(
    user_id: int,
    challenger_id: int,
    opponent_id: int,
    challenger_color: Color | str,
) -> Color | None:
    """Colour played by *user_id*, or ``None`` for spectators."""
    challenger_color = Color(challenger_color)
    if user_id == challenger_id:
        return challenger_color
    if user_id == opponent_id:
        return challenger_color.other
    return None


def holds_turn(
    user_id: int,
    challenger_id: int,
    opponent_id: int,
    challenger_color: Color | str,
    game_state: GameState | str,
) -> bool:
    """True when *user_id* is the player whose turn it is."""
    state = GameState(game_state)
    if state in TERMINAL_STATES:
        return False
    color = player_color(user_id, challenger_id, opponent_id, challenger_color)
    return color is not None and _TURN_STATE[color] is state
