"""
Hierarchy and permission gate for punishments.

Pure decisions over the current role and permission snapshots. No REST
calls and no writes happen here.
"""

from __future__ import annotations

from typing import Optional

import discord

from casekeeper.datatypes.punishment_datatypes import PunishmentType
from casekeeper.moderation.errors import EntitlementDenied

_REQUIRED_PERMISSIONS = {
    PunishmentType.BAN: "ban_members",
    PunishmentType.UNBAN: "ban_members",
    PunishmentType.KICK: "kick_members",
    PunishmentType.MUTE: "manage_roles",
    PunishmentType.UNMUTE: "manage_roles",
    PunishmentType.VOICE_MUTE: "mute_members",
    PunishmentType.VOICE_UNMUTE: "mute_members",
    PunishmentType.VOICE_DEAFEN: "deafen_members",
    PunishmentType.VOICE_UNDEAFEN: "deafen_members",
    PunishmentType.THREAD_MESSAGES_ADDED: "manage_roles",
    PunishmentType.THREAD_MESSAGES_REMOVED: "manage_roles",
}


def required_permission_for(punishment_type: PunishmentType) -> Optional[str]:
    """Return the ``discord.Permissions`` flag a punishment needs, or None for warnings."""
    return _REQUIRED_PERMISSIONS.get(punishment_type)


def _denial_reason(
    actor: discord.Member,
    target: Optional[discord.Member],
    required_permission: Optional[str],
    bot_member: discord.Member,
) -> Optional[str]:
    guild = bot_member.guild

    if target is not None:
        if target.id == guild.owner_id:
            return "The server owner cannot be punished."
        if actor.id != guild.owner_id and actor.top_role <= target.top_role:
            return f"Your highest role must be above {target.display_name}'s highest role."
        if bot_member.top_role <= target.top_role:
            return f"My highest role must be above {target.display_name}'s highest role."

    if required_permission is not None:
        permissions = bot_member.guild_permissions
        if not (permissions.administrator or getattr(permissions, required_permission, False)):
            label = required_permission.replace("_", " ").title()
            return f"I am missing the **{label}** permission."

    return None


def can_apply(
    actor: discord.Member,
    target: Optional[discord.Member],
    required_permission: Optional[str],
    *,
    bot_member: discord.Member,
) -> bool:
    """Return whether ``actor`` may punish ``target`` through the bot.

    Args:
        actor: Member requesting the punishment.
        target: Live target member, or None when only an id is known (for
            example a user that already left); hierarchy rules are then skipped.
        required_permission: ``discord.Permissions`` attribute the bot needs,
            or None when the action needs no platform permission.
        bot_member: The bot's own member object in the guild.
    """
    return _denial_reason(actor, target, required_permission, bot_member) is None


def ensure_can_apply(
    actor: discord.Member,
    target: Optional[discord.Member],
    required_permission: Optional[str],
    *,
    bot_member: discord.Member,
) -> None:
    """Same as :func:`can_apply` but raises :class:`EntitlementDenied` with the reason."""
    reason = _denial_reason(actor, target, required_permission, bot_member)
    if reason is not None:
        raise EntitlementDenied(reason)
