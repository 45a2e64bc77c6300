"""
coinhaven.engine.payloads — Interaction Payload Schemas
========================================================

Each :class:`~coinhaven.database.models.InteractionType` carries a JSON
payload of a fixed shape.  The shapes live here as pydantic models and are
decoded at the boundary, before a handler runs, so a malformed payload is
a handled :class:`PayloadError` rather than a ``KeyError`` deep inside a
service.

``TOKEN_SPECS`` also records which component kind a token is attached to
and whether only the user it was issued to may use it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coinhaven.database.models import InteractionType
from coinhaven.engine.events import ComponentKind


class PayloadError(Exception):
    """Stored payload does not match the schema for its interaction type."""


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------
class Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class EmptyPayload(Payload):
    pass


class ClanNamePromptPayload(Payload):
    wizard_message_id: int


class Connect4ChallengePayload(Payload):
    challenger_id: int
    wager: int = Field(ge=0)
    move_time: int = Field(gt=0)
    sibling_id: str  # the paired accept/decline token


class Connect4GamePayload(Payload):
    game_id: int


class ShopMenuPayload(Payload):
    wallet_id: int


@dataclass(frozen=True, slots=True)
class TokenSpec:
    kind: ComponentKind
    payload: type[Payload]
    owner_only: bool = True


TOKEN_SPECS: dict[InteractionType, TokenSpec] = {
    InteractionType.CLAN_CREATE: TokenSpec(ComponentKind.BUTTON, EmptyPayload),
    InteractionType.CLAN_CREATE_WIZARD_CANCEL: TokenSpec(ComponentKind.BUTTON, EmptyPayload),
    InteractionType.CLAN_CREATE_PROMPT_NAME: TokenSpec(
        ComponentKind.MODAL, ClanNamePromptPayload
    ),
    InteractionType.CONNECT4_ACCEPT: TokenSpec(
        ComponentKind.BUTTON, Connect4ChallengePayload
    ),
    InteractionType.CONNECT4_DECLINE: TokenSpec(
        ComponentKind.BUTTON, Connect4ChallengePayload
    ),
    # Spectators may suggest moves; the turn gate decides what happens.
    InteractionType.CONNECT4_MOVE: TokenSpec(
        ComponentKind.SELECT, Connect4GamePayload, owner_only=False
    ),
    InteractionType.CONNECT4_FORFEIT: TokenSpec(
        ComponentKind.BUTTON, Connect4GamePayload, owner_only=False
    ),
    InteractionType.SHOP_BUY_TOOL_MENU: TokenSpec(ComponentKind.SELECT, ShopMenuPayload),
}

# Token types that make up the clan creation wizard.
WIZARD_TYPES: tuple[InteractionType, ...] = (
    InteractionType.CLAN_CREATE,
    InteractionType.CLAN_CREATE_WIZARD_CANCEL,
    InteractionType.CLAN_CREATE_PROMPT_NAME,
)


def spec_for(interaction_type: str) -> TokenSpec:
    try:
        return TOKEN_SPECS[InteractionType(interaction_type)]
    except (ValueError, KeyError):
        raise PayloadError(f"Unknown interaction type {interaction_type!r}") from None


def decode_payload(interaction_type: str, raw: Any) -> Payload:
    """Validate *raw* (dict, JSON string or ``None``) against the schema
    registered for *interaction_type*.

    Raises
    ------
    PayloadError
        Unknown type, or the payload fails validation.
    """
    model = spec_for(interaction_type).payload
    try:
        if isinstance(raw, (str, bytes)):
            return model.model_validate_json(raw)
        return model.model_validate(raw or {})
    except ValidationError as exc:
        raise PayloadError(
            f"Invalid payload for {interaction_type}: {exc.error_count()} error(s)"
        ) from exc


def encode_payload(payload: Payload) -> dict:
    return payload.model_dump(mode="json")
