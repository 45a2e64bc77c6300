"""
coinhaven.bot.cogs.economy — Economy Slash Commands
====================================================

- /gift    — send money to another member ("50k", "1.5m", 0 = everything)
- /spawn   — admin: mint money into your own wallet
- /balance — show your wallet
- /fish    — go fishing
- /daily   — claim the daily reward
- /shop    — browse and buy tools

All work happens in :mod:`coinhaven.services.economy_service` on a worker
thread; this Cog only adapts Discord arguments and sends the reply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from coinhaven.bot.render import send_reply
from coinhaven.database.engine import run_db
from coinhaven.services import economy_service
from coinhaven.services.replies import error_reply

if TYPE_CHECKING:
    from coinhaven.bot.core import CoinhavenBot

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Contact developers."


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: CoinhavenBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        admin_role_id = bot.cfg.admin_role_id
        return any(role.id == admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


async def report_command_error(
    interaction: discord.Interaction, error: app_commands.AppCommandError
) -> None:
    """Shared ``cog_app_command_error`` body for the command Cogs."""
    if isinstance(error, app_commands.NoPrivateMessage):
        message = "This command is only available in servers."
    elif isinstance(error, app_commands.CheckFailure):
        message = "🔒 You need the Admin role to use this command."
    else:
        command = interaction.command.qualified_name if interaction.command else "?"
        logger.exception("Command /%s failed for user %s", command, interaction.user.id,
                         exc_info=error)
        message = GENERIC_ERROR
    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)


class Economy(commands.Cog, name="Economy"):
    """Wallet, gifting, fishing and the shop."""

    def __init__(self, bot: CoinhavenBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /gift
    # -------------------------------------------------------------------
    @app_commands.command(name="gift", description="Gift money to another member.")
    @app_commands.describe(
        member="Who receives the gift",
        amount="Amount, e.g. 5000, 50k, 1.5m (0 gifts your whole balance)",
    )
    @app_commands.guild_only()
    async def gift(
        self, interaction: discord.Interaction, member: discord.Member, amount: str
    ) -> None:
        reply = await run_db(
            economy_service.gift,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            sender_id=interaction.user.id,
            recipient_id=member.id,
            recipient_is_bot=member.bot,
            raw_amount=amount,
        )
        await send_reply(interaction, reply)

    # -------------------------------------------------------------------
    # /spawn
    # -------------------------------------------------------------------
    @app_commands.command(name="spawn", description="Spawn money into your wallet.")
    @app_commands.describe(amount="Amount to spawn, e.g. 1m")
    @app_commands.guild_only()
    @is_admin()
    async def spawn(self, interaction: discord.Interaction, amount: str) -> None:
        reply = await run_db(
            economy_service.spawn,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
            raw_amount=amount,
        )
        await send_reply(interaction, reply)

    # -------------------------------------------------------------------
    # /balance
    # -------------------------------------------------------------------
    @app_commands.command(name="balance", description="Show your wallet balance.")
    @app_commands.guild_only()
    async def balance(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            economy_service.balance,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
            display_name=interaction.user.display_name,
        )
        await send_reply(interaction, reply)

    # -------------------------------------------------------------------
    # /fish
    # -------------------------------------------------------------------
    @app_commands.command(name="fish", description="Go fishing for some money.")
    @app_commands.guild_only()
    async def fish(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            economy_service.fish,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
            channel_id=interaction.channel_id,
        )
        await send_reply(interaction, reply)

    # -------------------------------------------------------------------
    # /daily
    # -------------------------------------------------------------------
    @app_commands.command(name="daily", description="Claim your daily reward.")
    @app_commands.guild_only()
    async def daily(self, interaction: discord.Interaction) -> None:
        reply = await run_db(
            economy_service.daily,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild_id,
            user_id=interaction.user.id,
        )
        await send_reply(interaction, reply)

    # -------------------------------------------------------------------
    # /shop
    # -------------------------------------------------------------------
    @app_commands.command(name="shop", description="Buy tools from the shop.")
    @app_commands.guild_only()
    async def shop(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None:
            await send_reply(interaction, error_reply("This command is only available in servers."))
            return
        reply = await run_db(
            economy_service.shop_menu,
            self.bot.engine,
            self.bot.cfg,
            guild_id=interaction.guild.id,
            guild_name=interaction.guild.name,
            user_id=interaction.user.id,
            channel_id=interaction.channel_id,
        )
        await send_reply(interaction, reply)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await report_command_error(interaction, error)


async def setup(bot: CoinhavenBot) -> None:
    await bot.add_cog(Economy(bot))
