"""
coinhaven.bot.cogs.connect4 — Connect-4 Slash Commands
=======================================================

- /connect4      — challenge a member, optionally for a wager
- /connect4-game — re-post your live game

Accept / Decline, the move menu and Forfeit are handled by the component
router (:mod:`coinhaven.bot.cogs.components`).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from coinhaven.bot.cogs.economy import report_command_error
from coinhaven.bot.render import send_reply
from coinhaven.database.engine import run_db
from coinhaven.services import connect4_service

if TYPE_CHECKING:
    from coinhaven.bot.core import CoinhavenBot


class Connect4(commands.Cog, name="Connect4"):
    """Wagered Connect-4 matches."""

    def __init__(self, bot: CoinhavenBot) -> None:
        self.bot = bot

    @app_commands.command(name="connect4", description="Challenge someone to Connect 4.")
    @app_commands.describe(
        opponent="Who to challenge",
        wager="Amount each player puts in, e.g. 10k (default 0)",
        move_time="Seconds each player has per move",
    )
    @app_commands.guild_only()
    async def connect4(
        self,
        interaction: discord.Interaction,
        opponent: discord.Member,
        wager: str | None = None,
        move_time: app_commands.Range[int, 1, connect4_service.MAX_MOVE_TIME] | None = None,
    ) -> None:
        reply = await run_db(
            connect4_service.challenge,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            channel_id=interaction.channel_id,
            challenger_id=interaction.user.id,
            opponent_id=opponent.id,
            opponent_is_bot=opponent.bot,
            raw_wager=wager,
            move_time=move_time,
        )
        await send_reply(interaction, reply)

    @app_commands.command(name="connect4-game", description="Show your current Connect 4 game.")
    @app_commands.guild_only()
    async def show_game(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            connect4_service.show_game,
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
    await bot.add_cog(Connect4(bot))
