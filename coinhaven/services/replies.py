"""
coinhaven.services.replies — Renderable reply specs
====================================================

Services return a :class:`Reply` describing *what* to show; the bot layer
(:mod:`coinhaven.bot.render`) turns it into ``discord.Embed`` /
``discord.ui`` objects.  Keeping services free of discord.py types lets
them run on a worker thread and in tests without a gateway.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ButtonStyle(enum.StrEnum):
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    SUCCESS = "SUCCESS"
    DANGER = "DANGER"


@dataclass(frozen=True, slots=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass(slots=True)
class EmbedSpec:
    title: str | None = None
    description: str | None = None
    color: int | None = None
    fields: list[EmbedField] = field(default_factory=list)
    footer: str | None = None


@dataclass(frozen=True, slots=True)
class ButtonSpec:
    token_id: str
    label: str
    style: ButtonStyle = ButtonStyle.SECONDARY


@dataclass(frozen=True, slots=True)
class SelectOption:
    label: str
    value: str
    emoji: str | None = None


@dataclass(frozen=True, slots=True)
class SelectSpec:
    token_id: str
    placeholder: str
    options: tuple[SelectOption, ...]


@dataclass(frozen=True, slots=True)
class TextInputSpec:
    custom_id: str
    label: str
    max_length: int | None = None
    required: bool = True


@dataclass(frozen=True, slots=True)
class ModalSpec:
    token_id: str
    title: str
    inputs: tuple[TextInputSpec, ...]


# One action row: either up to five buttons or a single select.
ComponentRow = tuple[ButtonSpec, ...] | SelectSpec


@dataclass(slots=True)
class MessageEdit:
    """Rewrite another message in the same channel (e.g. the wizard prompt)."""

    message_id: int
    embed: EmbedSpec | None = None
    content: str = ""
    clear_components: bool = True


@dataclass(slots=True)
class Reply:
    """What a handler wants shown.

    ``update`` edits the message the component lives on instead of sending
    a new one.  ``clear_source`` strips the components from that message
    after replying.  ``modal`` opens a modal instead of replying.
    """

    content: str = ""
    ephemeral: bool = False
    embed: EmbedSpec | None = None
    components: list[ComponentRow] = field(default_factory=list)
    modal: ModalSpec | None = None
    update: bool = False
    clear_source: bool = False
    edits: list[MessageEdit] = field(default_factory=list)


def error_reply(content: str) -> Reply:
    """Ephemeral validation / not-found message."""
    return Reply(content=content, ephemeral=True)
