"""
coinhaven.bot.cogs.clans — /clan command group
===============================================

- /clan create — start the clan creation wizard
- /clan leave  — leave (or, as the last member, disband) your clan
- /clan info   — your clan's level, roster and statistics

Wizard buttons and the name modal are handled by the component router
(:mod:`coinhaven.bot.cogs.components`).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from coinhaven.bot.cogs.economy import report_command_error
from coinhaven.bot.render import send_reply
from coinhaven.database.engine import run_db
from coinhaven.services import clan_service

if TYPE_CHECKING:
    from coinhaven.bot.core import CoinhavenBot


class Clans(commands.GroupCog, group_name="clan", group_description="Clan commands."):
    """Clan lifecycle commands."""

    def __init__(self, bot: CoinhavenBot) -> None:
        self.bot = bot
        super().__init__()

    @app_commands.command(name="create", description="Create a new clan.")
    @app_commands.guild_only()
    async def create(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            clan_service.wizard_step1,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
            channel_id=interaction.channel_id,
        )
        await send_reply(interaction, reply)

    @app_commands.command(name="leave", description="Leave your clan.")
    @app_commands.guild_only()
    async def leave(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            clan_service.leave_clan,
            self.bot.engine,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
        )
        await send_reply(interaction, reply)

    @app_commands.command(name="info", description="Show your clan.")
    @app_commands.guild_only()
    async def info(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            clan_service.clan_info,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
        )
        await send_reply(interaction, reply)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await report_command_error(interaction, error)


async def setup(bot: CoinhavenBot) -> None:
    await bot.add_cog(Clans(bot))
