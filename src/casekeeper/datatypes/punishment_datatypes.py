"""
Punishment types and the data structures that flow through the punishment
workflow: member references, requests, cases, warning rows and threshold
punishments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

import discord

from casekeeper.moderation.errors import ValidationError


class PunishmentType(Enum):
    """Enumeration of every action that produces a case."""

    BAN = "ban"
    KICK = "kick"
    MUTE = "mute"
    UNBAN = "unban"
    UNMUTE = "unmute"
    VOICE_MUTE = "voice_mute"
    VOICE_UNMUTE = "voice_unmute"
    VOICE_DEAFEN = "voice_deafen"
    VOICE_UNDEAFEN = "voice_undeafen"
    THREAD_MESSAGES_ADDED = "thread_messages_added"
    THREAD_MESSAGES_REMOVED = "thread_messages_removed"
    WARNING_ADDED = "warning_added"
    WARNING_REMOVED = "warning_removed"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Past-tense label shown in the mod-log header."""
        return _LABELS[self][0]

    @property
    def emoji(self) -> str:
        """Emoji shown in front of the mod-log header."""
        return _LABELS[self][1]

    @property
    def is_warning(self) -> bool:
        return self in (PunishmentType.WARNING_ADDED, PunishmentType.WARNING_REMOVED)

    @property
    def is_voice(self) -> bool:
        return self in (
            PunishmentType.VOICE_MUTE,
            PunishmentType.VOICE_UNMUTE,
            PunishmentType.VOICE_DEAFEN,
            PunishmentType.VOICE_UNDEAFEN,
        )

    @property
    def reversal(self) -> Optional["PunishmentType"]:
        """The type scheduled to undo this one when a duration is set, if any."""
        return _REVERSALS.get(self)


_LABELS = {
    PunishmentType.BAN: ("Banned", "\N{HAMMER}"),
    PunishmentType.KICK: ("Kicked", "\N{ATHLETIC SHOE}"),
    PunishmentType.MUTE: ("Muted", "\N{SPEAKER WITH CANCELLATION STROKE}"),
    PunishmentType.UNBAN: ("Unbanned", "\N{BUST IN SILHOUETTE}"),
    PunishmentType.UNMUTE: ("Unmuted", "\N{PUBLIC ADDRESS LOUDSPEAKER}"),
    PunishmentType.VOICE_MUTE: ("Voice Muted", "\N{SPEAKER WITH CANCELLATION STROKE}"),
    PunishmentType.VOICE_UNMUTE: ("Voice Unmuted", "\N{PUBLIC ADDRESS LOUDSPEAKER}"),
    PunishmentType.VOICE_DEAFEN: ("Voice Deafened", "\N{SPEAKER WITH CANCELLATION STROKE}"),
    PunishmentType.VOICE_UNDEAFEN: ("Voice Undeafened", "\N{PUBLIC ADDRESS LOUDSPEAKER}"),
    PunishmentType.THREAD_MESSAGES_ADDED: ("Thread Messaging Permissions Added", "\N{SPOOL OF THREAD}"),
    PunishmentType.THREAD_MESSAGES_REMOVED: ("Thread Messaging Permissions Removed", "\N{SPOOL OF THREAD}"),
    PunishmentType.WARNING_ADDED: ("Warning Added", "\N{WARNING SIGN}\N{VARIATION SELECTOR-16}"),
    PunishmentType.WARNING_REMOVED: ("Warning Removed", "\N{MEMO}"),
}

_REVERSALS = {
    PunishmentType.BAN: PunishmentType.UNBAN,
    PunishmentType.MUTE: PunishmentType.UNMUTE,
    PunishmentType.VOICE_MUTE: PunishmentType.VOICE_UNMUTE,
    PunishmentType.VOICE_DEAFEN: PunishmentType.VOICE_UNDEAFEN,
    PunishmentType.THREAD_MESSAGES_REMOVED: PunishmentType.THREAD_MESSAGES_ADDED,
}


# ---------------------------------------------------------------------------
# Member references
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FullMember:
    """A live guild member object."""

    member: discord.Member

    @property
    def id(self) -> int:
        return self.member.id

    @property
    def guild(self) -> discord.Guild:
        return self.member.guild

    async def resolve(self) -> discord.Member:
        return self.member

    def as_snowflake(self) -> discord.abc.Snowflake:
        return self.member


@dataclass(frozen=True, slots=True)
class MemberReference:
    """An id + guild pair for a member that may no longer be in the guild."""

    id: int
    guild: discord.Guild

    async def resolve(self) -> discord.Member:
        """Return the live member, fetching it over REST when it is not cached.

        Raises:
            discord.NotFound: The user is not a member of the guild.
        """
        cached = self.guild.get_member(self.id)
        if cached is not None:
            return cached
        return await self.guild.fetch_member(self.id)

    def as_snowflake(self) -> discord.abc.Snowflake:
        return discord.Object(id=self.id)


MemberLike = Union[FullMember, MemberReference]


def to_member_like(target: Union[discord.Member, discord.abc.Snowflake, int], guild: discord.Guild) -> MemberLike:
    """Wrap a member, user or raw id into the matching :data:`MemberLike` variant."""
    if isinstance(target, discord.Member):
        return FullMember(target)
    target_id = target if isinstance(target, int) else target.id
    return MemberReference(id=int(target_id), guild=guild)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class PunishmentOptions:
    """Optional knobs of a punishment request, validated on construction.

    Attributes:
        reason: Free-form reason shown in the audit log and the mod-log.
        time: Duration in milliseconds after which the action is reverted.
        attachments: Evidence URLs, in order.
        voice_channel: Voice channel tied to a voice action.
        publish: Whether the resulting case is posted to the mod-log.
        soft: Ban only; unban right after to purge messages.
        days: Ban only; days of messages to delete (0-7).
        amount: Warnings only; how many to add or remove. ``None`` on a
            removal means all of them.
    """

    reason: Optional[str] = None
    time: Optional[int] = None
    attachments: List[str] = field(default_factory=list)
    voice_channel: Optional[discord.abc.Snowflake] = None
    publish: bool = True
    soft: bool = False
    days: int = 7
    amount: Optional[int] = None

    def __post_init__(self) -> None:
        if self.reason is not None:
            self.reason = self.reason.strip() or None
        if self.time is not None:
            if isinstance(self.time, bool) or not isinstance(self.time, int) or self.time <= 0:
                raise ValidationError(f"Punishment time must be a positive number of milliseconds, got {self.time!r}")
        if not 0 <= self.days <= 7:
            raise ValidationError(f"Message deletion days must be between 0 and 7, got {self.days}")
        if self.amount is not None and self.amount < 1:
            raise ValidationError(f"Warning amount must be at least 1, got {self.amount}")
        self.attachments = [str(url) for url in self.attachments]


@dataclass(slots=True)
class PunishmentRequest:
    """A fully validated request handed to the punishment executor."""

    member: MemberLike
    moderator: discord.Member
    type: PunishmentType
    options: PunishmentOptions = field(default_factory=PunishmentOptions)

    @classmethod
    def create(
        cls,
        member: Optional[MemberLike],
        moderator: Optional[discord.Member],
        type: PunishmentType,
        **options,
    ) -> "PunishmentRequest":
        """Build a request, validating the target and every option eagerly.

        Raises:
            ValidationError: ``member`` or ``moderator`` is missing, ``type``
                is not a :class:`PunishmentType`, or an option is out of range.
        """
        if member is None:
            raise ValidationError("A target member is required to build a punishment request.")
        if moderator is None:
            raise ValidationError("A moderator is required to build a punishment request.")
        if not isinstance(type, PunishmentType):
            raise ValidationError(f"Unknown punishment type: {type!r}")
        return cls(member=member, moderator=moderator, type=type, options=PunishmentOptions(**options))

    @property
    def guild(self) -> discord.Guild:
        return self.member.guild


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class Case:
    """One audit-log row for a moderation action.

    ``index`` is sequential per guild starting at 1. ``message_id`` is set once
    the case has been posted to the mod-log.
    """

    guild_id: int
    index: int
    victim_id: int
    moderator_id: int
    type: PunishmentType
    reason: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    soft: bool = False
    time: Optional[int] = None
    message_id: Optional[int] = None
    warning_amount: Optional[int] = None
    voice_channel_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class NewCase:
    """Case fields known before the ledger allocates an index."""

    guild_id: int
    victim_id: int
    moderator_id: int
    type: PunishmentType
    reason: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    soft: bool = False
    time: Optional[int] = None
    warning_amount: Optional[int] = None
    voice_channel_id: Optional[int] = None


@dataclass(slots=True)
class WarningRecord:
    """A single warning grant (positive amount) or removal (negative amount)."""

    guild_id: int
    member_id: int
    amount: int
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class ThresholdPunishment:
    """Punishment applied automatically when a member reaches ``warnings`` warnings."""

    guild_id: int
    warnings: int
    type: PunishmentType
    time: Optional[int] = None
    soft: bool = False
    days: int = 7
