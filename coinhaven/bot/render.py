"""
coinhaven.bot.render — Reply → discord.py objects
==================================================

Turns the :class:`~coinhaven.services.replies.Reply` specs returned by the
services into embeds, views and modals, and sends them on an interaction.

Components are routed by the ``on_interaction`` listener in
:mod:`coinhaven.bot.cogs.components`, not by view callbacks, so every view
and modal is stopped before it is sent; a finished view is never added to
discord.py's view store.
"""

from __future__ import annotations

import logging

import discord

from coinhaven.services.replies import (
    ButtonSpec,
    ButtonStyle,
    ComponentRow,
    EmbedSpec,
    MessageEdit,
    ModalSpec,
    Reply,
)

logger = logging.getLogger(__name__)

_BUTTON_STYLES = {
    ButtonStyle.PRIMARY: discord.ButtonStyle.primary,
    ButtonStyle.SECONDARY: discord.ButtonStyle.secondary,
    ButtonStyle.SUCCESS: discord.ButtonStyle.success,
    ButtonStyle.DANGER: discord.ButtonStyle.danger,
}


def build_embed(spec: EmbedSpec) -> discord.Embed:
    embed = discord.Embed(title=spec.title, description=spec.description, color=spec.color)
    for f in spec.fields:
        embed.add_field(name=f.name, value=f.value, inline=f.inline)
    if spec.footer:
        embed.set_footer(text=spec.footer)
    return embed


def build_view(rows: list[ComponentRow]) -> discord.ui.View | None:
    if not rows:
        return None
    view = discord.ui.View(timeout=None)
    for index, row in enumerate(rows):
        if isinstance(row, tuple):
            for button in row:
                view.add_item(_build_button(button, index))
        else:
            view.add_item(discord.ui.Select(
                custom_id=row.token_id,
                placeholder=row.placeholder,
                options=[
                    discord.SelectOption(label=o.label, value=o.value, emoji=o.emoji)
                    for o in row.options
                ],
                row=index,
            ))
    view.stop()
    return view


def _build_button(spec: ButtonSpec, row: int) -> discord.ui.Button:
    return discord.ui.Button(
        custom_id=spec.token_id,
        label=spec.label,
        style=_BUTTON_STYLES[spec.style],
        row=row,
    )


def build_modal(spec: ModalSpec) -> discord.ui.Modal:
    modal = discord.ui.Modal(title=spec.title, custom_id=spec.token_id)
    for field in spec.inputs:
        modal.add_item(discord.ui.TextInput(
            label=field.label,
            custom_id=field.custom_id,
            max_length=field.max_length,
            required=field.required,
            style=discord.TextStyle.short,
        ))
    modal.stop()
    return modal


def _message_kwargs(reply: Reply) -> dict:
    kwargs: dict = {"content": reply.content or None}
    if reply.embed is not None:
        kwargs["embed"] = build_embed(reply.embed)
    view = build_view(reply.components)
    if view is not None:
        kwargs["view"] = view
    return kwargs


async def send_reply(interaction: discord.Interaction, reply: Reply) -> None:
    """Answer *interaction* with *reply*, then apply any follow-up edits."""
    if reply.modal is not None:
        await interaction.response.send_modal(build_modal(reply.modal))
        return

    if reply.update and interaction.message is not None:
        kwargs = _message_kwargs(reply)
        kwargs.setdefault("embed", None)
        kwargs.setdefault("view", None)
        await interaction.response.edit_message(**kwargs)
    else:
        kwargs = _message_kwargs(reply)
        if reply.ephemeral:
            kwargs["ephemeral"] = True
        await interaction.response.send_message(**kwargs)

    if reply.clear_source and interaction.message is not None:
        try:
            await interaction.message.edit(view=None)
        except discord.HTTPException:
            logger.warning("Could not clear components on message %s", interaction.message.id)

    for edit in reply.edits:
        await _apply_edit(interaction, edit)


async def _apply_edit(interaction: discord.Interaction, edit: MessageEdit) -> None:
    channel = interaction.channel
    if channel is None or not hasattr(channel, "get_partial_message"):
        return
    kwargs: dict = {"content": edit.content or None}
    if edit.embed is not None:
        kwargs["embed"] = build_embed(edit.embed)
    if edit.clear_components:
        kwargs["view"] = None
    try:
        await channel.get_partial_message(edit.message_id).edit(**kwargs)
    except discord.HTTPException:
        logger.warning("Could not edit message %s", edit.message_id)
