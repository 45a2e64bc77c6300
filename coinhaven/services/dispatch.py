"""
coinhaven.services.dispatch — Component Router
===============================================

Resolves the token behind a button / select / modal event and hands it to
the handler registered for its :class:`InteractionType`.  One session per
event; the handler's writes commit together after it returns.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from coinhaven.constants import CONTACT_DEVELOPERS, utcnow
from coinhaven.database.models import InteractionType
from coinhaven.engine.events import ComponentEvent, ComponentKind
from coinhaven.engine.payloads import PayloadError
from coinhaven.services import clan_service, connect4_service, economy_service
from coinhaven.services.interaction_service import ResolvedInteraction, TokenError, resolve
from coinhaven.services.replies import Reply, error_reply

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from coinhaven.config import CoinhavenConfig

logger = logging.getLogger(__name__)

Handler = Callable[[ResolvedInteraction], Reply]

HANDLERS: dict[InteractionType, Handler] = {
    InteractionType.CLAN_CREATE: clan_service.wizard_step2,
    InteractionType.CLAN_CREATE_WIZARD_CANCEL: clan_service.cancel_wizard,
    InteractionType.CLAN_CREATE_PROMPT_NAME: clan_service.create_from_name,
    InteractionType.CONNECT4_ACCEPT: connect4_service.accept,
    InteractionType.CONNECT4_DECLINE: connect4_service.decline,
    InteractionType.CONNECT4_MOVE: connect4_service.move,
    InteractionType.CONNECT4_FORFEIT: connect4_service.forfeit,
    InteractionType.SHOP_BUY_TOOL_MENU: economy_service.shop_buy,
}


def _token_error_reply(exc: TokenError, event: ComponentEvent) -> Reply:
    # A stale button is replaced in place so it can't be clicked again.
    # Modals have no source message to update.
    if exc.is_stale and event.kind is not ComponentKind.MODAL:
        return Reply(content=exc.message, update=True)
    return error_reply(exc.message)


def handle_component(
    engine: Engine,
    cfg: CoinhavenConfig,
    event: ComponentEvent,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> Reply:
    """Resolve, route and commit one component event.

    Token and payload problems become user-facing replies.  Anything else
    propagates to the caller's outer handler.
    """
    if event.guild_id is None:
        return error_reply("This interaction is only available in servers.")

    now = now or utcnow()
    with Session(engine, expire_on_commit=False) as session:
        try:
            token, payload = resolve(session, event, now=now)
        except TokenError as exc:
            logger.debug("Token %s rejected: %s", event.token_id, exc.problem)
            return _token_error_reply(exc, event)
        except PayloadError:
            logger.warning("Token %s carries an invalid payload", event.token_id, exc_info=True)
            return error_reply(f"Invalid context. {CONTACT_DEVELOPERS}")

        handler = HANDLERS[InteractionType(token.type)]
        ctx = ResolvedInteraction(
            session=session,
            cfg=cfg,
            token=token,
            payload=payload,
            event=event,
            now=now,
            rng=rng or random.Random(),
        )
        reply = handler(ctx)
        session.commit()
    return reply
