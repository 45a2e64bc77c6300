"""
coinhaven.services.interaction_service — Pending-Interaction Tokens
====================================================================

Every button, select menu and modal the bot sends is backed by a row in
``interactions``; the row id is the component's custom-id.  This module
issues those rows, resolves them when a component is used, and consumes
them.

Consumption is ``UPDATE … SET consumed_at = now WHERE consumed_at IS
NULL``.  When two clicks race, whichever UPDATE commits first gets
``rowcount == 1``; the other sees ``0`` and must answer "already handled".
"""

from __future__ import annotations

import enum
import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.orm import Session

from coinhaven.constants import ensure_utc, utcnow
from coinhaven.database.models import Interaction, InteractionType
from coinhaven.engine.events import ComponentEvent, ComponentKind
from coinhaven.engine.payloads import Payload, decode_payload, encode_payload, spec_for

if TYPE_CHECKING:
    from coinhaven.config import CoinhavenConfig

logger = logging.getLogger(__name__)


class TokenProblem(enum.StrEnum):
    NOT_FOUND = "NOT_FOUND"
    WRONG_KIND = "WRONG_KIND"
    NOT_YOURS = "NOT_YOURS"
    WRONG_GUILD = "WRONG_GUILD"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"


_KIND_LABEL = {
    ComponentKind.BUTTON: "button",
    ComponentKind.SELECT: "select menu",
    ComponentKind.MODAL: "form",
}

_PROBLEM_MESSAGES = {
    TokenProblem.NOT_FOUND: "Unknown interaction. Contact developers.",
    TokenProblem.NOT_YOURS: "This interaction isn't for you.",
    TokenProblem.WRONG_GUILD: "This interaction belongs to another server.",
    TokenProblem.EXPIRED: "This interaction has already been handled or has expired.",
    TokenProblem.CONSUMED: "This interaction has already been handled or has expired.",
}


class TokenError(Exception):
    """A component was used with a token that cannot be honoured."""

    def __init__(self, problem: TokenProblem, *, expected: ComponentKind | None = None) -> None:
        self.problem = problem
        self.expected = expected
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if self.problem is TokenProblem.WRONG_KIND:
            label = _KIND_LABEL.get(self.expected, "component") if self.expected else "component"
            return f"This interaction is only available as a {label}."
        return _PROBLEM_MESSAGES[self.problem]

    @property
    def is_stale(self) -> bool:
        return self.problem in (TokenProblem.EXPIRED, TokenProblem.CONSUMED)


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------
def create_token(
    session: Session,
    *,
    interaction_type: InteractionType,
    user_id: int,
    guild_id: int,
    channel_id: int | None = None,
    payload: Payload | None = None,
    ttl: timedelta | None = None,
    token_id: str | None = None,
    now: datetime | None = None,
) -> Interaction:
    """Insert a pending-interaction row and flush so its id is available."""
    now = now or utcnow()
    row = Interaction(
        type=interaction_type.value,
        user_id=user_id,
        guild_id=guild_id,
        channel_id=channel_id,
        payload=encode_payload(payload) if payload is not None else None,
        created_at=now,
        expires_at=now + ttl if ttl is not None else None,
    )
    if token_id is not None:
        row.id = token_id
    session.add(row)
    session.flush()
    return row


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------
def resolve(
    session: Session,
    event: ComponentEvent,
    *,
    now: datetime | None = None,
) -> tuple[Interaction, Payload]:
    """Load and validate the token behind *event*.

    Raises
    ------
    TokenError
        Missing, wrong component kind, issued to someone else, issued in
        another guild, expired or already consumed.
    PayloadError
        The stored payload does not match its type's schema.
    """
    row = session.get(Interaction, event.token_id)
    if row is None:
        raise TokenError(TokenProblem.NOT_FOUND)

    spec = spec_for(row.type)
    if spec.kind is not event.kind:
        raise TokenError(TokenProblem.WRONG_KIND, expected=spec.kind)
    if spec.owner_only and row.user_id != event.user_id:
        raise TokenError(TokenProblem.NOT_YOURS)
    if row.guild_id != event.guild_id:
        raise TokenError(TokenProblem.WRONG_GUILD)

    now = now or utcnow()
    if row.expires_at is not None and ensure_utc(row.expires_at) <= now:
        raise TokenError(TokenProblem.EXPIRED)
    if row.consumed_at is not None:
        raise TokenError(TokenProblem.CONSUMED)

    return row, decode_payload(row.type, row.payload)


# ---------------------------------------------------------------------------
# Consume
# ---------------------------------------------------------------------------
def consume(session: Session, token_id: str, *, now: datetime | None = None) -> bool:
    """Mark one token consumed.  Returns False if it already was."""
    result = session.execute(
        update(Interaction)
        .where(Interaction.id == token_id, Interaction.consumed_at.is_(None))
        .values(consumed_at=now or utcnow())
    )
    return result.rowcount == 1


def consume_ids(
    session: Session, token_ids: Iterable[str], *, now: datetime | None = None
) -> int:
    ids = list(token_ids)
    if not ids:
        return 0
    result = session.execute(
        update(Interaction)
        .where(Interaction.id.in_(ids), Interaction.consumed_at.is_(None))
        .values(consumed_at=now or utcnow())
    )
    return result.rowcount


def consume_for_user(
    session: Session,
    *,
    user_id: int,
    guild_id: int,
    types: Iterable[InteractionType],
    exclude_id: str | None = None,
    now: datetime | None = None,
) -> int:
    """Consume every live token of *types* issued to a user in a guild.

    Used to invalidate stale buttons when a multi-step flow advances or is
    cancelled.  Returns the number of tokens consumed.
    """
    stmt = (
        update(Interaction)
        .where(
            Interaction.user_id == user_id,
            Interaction.guild_id == guild_id,
            Interaction.type.in_([t.value for t in types]),
            Interaction.consumed_at.is_(None),
        )
        .values(consumed_at=now or utcnow())
    )
    if exclude_id is not None:
        stmt = stmt.where(Interaction.id != exclude_id)
    result = session.execute(stmt)
    if result.rowcount:
        logger.debug("Consumed %d stale token(s) for user %s", result.rowcount, user_id)
    return result.rowcount


# ---------------------------------------------------------------------------
# Handler context
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ResolvedInteraction:
    """Everything a component handler needs, bundled by the dispatcher.

    ``session`` is open; the dispatcher commits after the handler returns.
    Handlers that bail out after writing must ``session.rollback()`` first.
    """

    session: Session
    cfg: CoinhavenConfig
    token: Interaction
    payload: Payload
    event: ComponentEvent
    now: datetime
    rng: random.Random
