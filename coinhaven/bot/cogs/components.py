"""
coinhaven.bot.cogs.components — Component Router
=================================================

Every button, select menu and modal the bot sends has a pending
interaction token as its custom-id.  This Cog listens to raw interactions,
normalizes component and modal-submit payloads into a
:class:`~coinhaven.engine.events.ComponentEvent`, and hands them to
:func:`coinhaven.services.dispatch.handle_component` on a worker thread.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from coinhaven.bot.cogs.economy import GENERIC_ERROR
from coinhaven.bot.render import send_reply
from coinhaven.database.engine import run_db
from coinhaven.engine.events import ComponentEvent, ComponentKind
from coinhaven.services.dispatch import handle_component

if TYPE_CHECKING:
    from coinhaven.bot.core import CoinhavenBot

logger = logging.getLogger(__name__)

_COMPONENT_KINDS = {
    discord.ComponentType.button.value: ComponentKind.BUTTON,
    discord.ComponentType.string_select.value: ComponentKind.SELECT,
}


def _modal_fields(data: dict) -> dict[str, str]:
    fields: dict[str, str] = {}
    for row in data.get("components", []):
        for item in row.get("components", []):
            fields[item["custom_id"]] = item.get("value", "")
    return fields


def to_event(interaction: discord.Interaction) -> ComponentEvent | None:
    """Build a :class:`ComponentEvent`, or ``None`` for non-component traffic."""
    data = interaction.data or {}
    custom_id = data.get("custom_id")
    if not custom_id:
        return None

    if interaction.type is discord.InteractionType.component:
        kind = _COMPONENT_KINDS.get(data.get("component_type"))
        if kind is None:
            return None
        values = tuple(data.get("values", ()))
        fields: dict[str, str] = {}
    elif interaction.type is discord.InteractionType.modal_submit:
        kind = ComponentKind.MODAL
        values = ()
        fields = _modal_fields(data)
    else:
        return None

    return ComponentEvent(
        token_id=custom_id,
        kind=kind,
        user_id=interaction.user.id,
        guild_id=interaction.guild_id,
        channel_id=interaction.channel_id,
        message_id=interaction.message.id if interaction.message else None,
        values=values,
        fields=fields,
    )


class Components(commands.Cog, name="Components"):
    """Routes component interactions to their handlers."""

    def __init__(self, bot: CoinhavenBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        event = to_event(interaction)
        if event is None:
            return
        try:
            await self._handle(interaction, event)
        except Exception:
            logger.exception(
                "Error handling %s interaction %s from user %s",
                event.kind, event.token_id, event.user_id,
            )
            if not interaction.response.is_done():
                await interaction.response.send_message(GENERIC_ERROR, ephemeral=True)

    async def _handle(self, interaction: discord.Interaction, event: ComponentEvent) -> None:
        """Inner handler (separated for error isolation)."""
        reply = await run_db(handle_component, self.bot.engine, self.bot.cfg, event)
        await send_reply(interaction, reply)


async def setup(bot: CoinhavenBot) -> None:
    await bot.add_cog(Components(bot))
