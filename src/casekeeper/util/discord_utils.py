"""
discord_utils.py
================

Low-level Discord utility functions for casekeeper.

Stateless helpers for duration choices, permission checks, channel iteration
and best-effort message deletion. Higher-level components own all state.
"""

import datetime
from typing import Iterator, Optional, Union

import discord
import humanize

from casekeeper.util.logger import get_logger

logger = get_logger("discord_utils")

# ==========================================
# Duration constants and choices
# ==========================================

# Human-friendly label for a permanent duration
PERMANENT_DURATION = "Till the end of time"

# Label -> milliseconds (0 = no scheduled reversal)
DURATIONS = {
    "60 secs": 60 * 1000,
    "5 mins": 5 * 60 * 1000,
    "10 mins": 10 * 60 * 1000,
    "30 mins": 30 * 60 * 1000,
    "1 hour": 60 * 60 * 1000,
    "2 hours": 2 * 60 * 60 * 1000,
    "1 day": 24 * 60 * 60 * 1000,
    "1 week": 7 * 24 * 60 * 60 * 1000,
    PERMANENT_DURATION: 0,
}

DURATION_CHOICES = list(DURATIONS.keys())

DELETE_MESSAGE_CHOICES = [
    discord.OptionChoice(name="Don't Delete Any", value=0),
    discord.OptionChoice(name="Previous 24 Hours", value=1),
    discord.OptionChoice(name="Previous 3 Days", value=3),
    discord.OptionChoice(name="Previous 7 Days", value=7),
]


def parse_duration(human_readable_duration: str) -> Optional[int]:
    """
    Convert a duration label from DURATION_CHOICES to milliseconds.

    Returns:
        Optional[int]: Milliseconds, or None for a permanent/unknown label.
    """
    millis = DURATIONS.get(human_readable_duration, 0)
    return millis or None


def format_duration(milliseconds: int) -> str:
    """
    Convert a duration in milliseconds to a human-readable string.

    Raises:
        ValueError: The duration is not a positive number.
    """
    if milliseconds is None or milliseconds <= 0:
        raise ValueError(f"Cannot format duration {milliseconds!r}")
    return humanize.precisedelta(datetime.timedelta(milliseconds=milliseconds), minimum_unit="seconds")


# ==========================================
# Permission helpers
# ==========================================

def is_ignored_author(author: Union[discord.User, discord.Member]) -> bool:
    """
    Check if an author should be ignored by automod (bots or non-members).

    Args:
        author (discord.User | discord.Member): The user or member to check.

    Returns:
        bool: True if the author is a bot or not a member, False otherwise.
    """
    return author.bot or not isinstance(author, discord.Member)


def has_elevated_permissions(member: Union[discord.User, discord.Member]) -> bool:
    """
    Check if a member is exempt from automod (administrator or manage messages).

    Args:
        member (discord.User | discord.Member): The member to evaluate.

    Returns:
        bool: True if the member has elevated permissions, False otherwise.
    """
    if not isinstance(member, discord.Member):
        return False

    perms = member.guild_permissions
    return perms.administrator or perms.manage_messages


def has_permissions(application_context: discord.ApplicationContext, **required_permissions) -> bool:
    """
    Check if the command issuer has all specified permissions in the guild.

    Args:
        application_context (discord.ApplicationContext): The command context.
        **required_permissions: Permission flags to check.

    Returns:
        bool: True if all permissions are present, False otherwise.
    """
    if not isinstance(application_context.author, discord.Member):
        return False
    perms = application_context.author.guild_permissions
    return perms.administrator or all(getattr(perms, permission_name, False) for permission_name in required_permissions)


def bot_can_manage_channel(channel: discord.abc.GuildChannel, guild: discord.Guild) -> bool:
    """Return True if the bot may edit permission overwrites in ``channel``."""
    me = getattr(guild, "me", None)
    if me is None:
        return False
    permissions = channel.permissions_for(me)
    return permissions.manage_channels or permissions.manage_roles


def iter_manageable_channels(guild: discord.Guild) -> Iterator[discord.abc.GuildChannel]:
    """
    Iterate over channels in a guild where the bot can edit permission overwrites.

    Yields:
        discord.abc.GuildChannel: Channels suitable for muted-role overwrites.
    """
    for channel in getattr(guild, "channels", []):
        if bot_can_manage_channel(channel, guild):
            yield channel


# --- Public Discord utility functions ---

async def safe_delete_message(message: discord.Message) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Args:
        message (discord.Message): The message to delete.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning("No permission to delete message %s", message.id)
    except discord.HTTPException as exc:
        logger.error("Error deleting message %s: %s", message.id, exc)
    return False
