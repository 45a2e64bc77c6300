"""
coinhaven.services.wallet_service — Economy Ledger
===================================================

Wallet reads and balance mutations.  Balance changes are always relative
``UPDATE wallets SET balance = balance + :delta`` statements evaluated by
the database, never read-modify-write in Python, so two commands racing
on the same wallet cannot lose an update.

Functions taking a ``session`` join the caller's transaction; functions
taking an ``engine`` open and commit their own.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coinhaven.database.models import Wallet

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def get_or_create_wallet(session: Session, user_id: int, guild_id: int) -> Wallet:
    """Fetch or insert the wallet for ``(user_id, guild_id)``.

    Idempotent.  If a concurrent request inserts the same wallet first,
    the unique constraint fires inside a SAVEPOINT and the winner's row is
    returned instead.
    """
    stmt = select(Wallet).where(Wallet.user_id == user_id, Wallet.guild_id == guild_id)
    wallet = session.scalar(stmt)
    if wallet is not None:
        return wallet

    wallet = Wallet(user_id=user_id, guild_id=guild_id, balance=0)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(wallet)
            session.flush()
    except IntegrityError:
        logger.debug("Wallet for %s/%s created concurrently, re-reading", user_id, guild_id)
        wallet = session.scalars(stmt).one()
    return wallet


def create_wallet(engine: Engine, user_id: int, guild_id: int) -> Wallet:
    """Get-or-create in its own transaction; returns a detached row."""
    with Session(engine, expire_on_commit=False) as session:
        wallet = get_or_create_wallet(session, user_id, guild_id)
        session.commit()
        return wallet


def get_balance(session: Session, wallet_id: int) -> int:
    return session.scalar(select(Wallet.balance).where(Wallet.id == wallet_id)) or 0


def increment_balance(session: Session, wallet_id: int, amount: int) -> int:
    """Add *amount* (may be negative) and return the new balance."""
    row = session.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id)
        .values(balance=Wallet.balance + amount)
        .returning(Wallet.balance)
    ).first()
    if row is None:
        raise LookupError(f"Wallet {wallet_id} does not exist")
    return row[0]


def try_debit(session: Session, wallet_id: int, amount: int) -> int | None:
    """Subtract *amount* only if the balance covers it.

    Uses a guarded ``UPDATE … WHERE balance >= :amount`` so the funds check
    and the debit are one statement.  Returns the new balance, or ``None``
    when funds are insufficient (nothing is changed).
    """
    row = session.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id, Wallet.balance >= amount)
        .values(balance=Wallet.balance - amount)
        .returning(Wallet.balance)
    ).first()
    return row[0] if row is not None else None


def deposit(engine: Engine, user_id: int, guild_id: int, amount: int) -> int:
    """Credit a user's wallet, creating it if needed.  Returns the new balance."""
    with Session(engine) as session:
        wallet = get_or_create_wallet(session, user_id, guild_id)
        balance = increment_balance(session, wallet.id, amount)
        session.commit()
        return balance


def transfer(
    engine: Engine,
    *,
    guild_id: int,
    sender_id: int,
    recipient_id: int,
    amount: int,
) -> int | None:
    """Move *amount* between two wallets atomically.

    Returns the sender's new balance, or ``None`` if the sender could not
    cover the amount (in which case neither wallet changes).
    """
    with Session(engine) as session:
        sender = get_or_create_wallet(session, sender_id, guild_id)
        recipient = get_or_create_wallet(session, recipient_id, guild_id)

        remaining = try_debit(session, sender.id, amount)
        if remaining is None:
            session.rollback()
            return None
        increment_balance(session, recipient.id, amount)
        session.commit()

    logger.info(
        "Transfer: %s → %s, %d in guild %s", sender_id, recipient_id, amount, guild_id
    )
    return remaining
