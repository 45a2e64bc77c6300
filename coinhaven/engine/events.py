"""
coinhaven.engine.events — ComponentEvent envelope
==================================================

Every button click, select choice and modal submission is normalized into
a :class:`ComponentEvent` before it reaches a service.  Services therefore
never see a ``discord.Interaction`` and can be tested with plain values.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

__all__ = ["ComponentEvent", "ComponentKind"]


class ComponentKind(enum.StrEnum):
    BUTTON = "BUTTON"
    SELECT = "SELECT"
    MODAL = "MODAL"


@dataclass(frozen=True, slots=True)
class ComponentEvent:
    """Normalized component interaction.

    ``token_id`` is the component's custom-id (an ``interactions.id``).
    ``values`` carries select-menu choices; ``fields`` carries modal text
    inputs keyed by their custom-id.
    """

    token_id: str
    kind: ComponentKind
    user_id: int
    guild_id: int | None
    channel_id: int | None = None
    message_id: int | None = None
    values: tuple[str, ...] = ()
    fields: dict[str, str] = field(default_factory=dict)
