"""
Automod detectors.

Each detector is independent: it looks at one event and returns a verdict
or None. Spam and raid rate-limit through ``commands.CooldownMapping``,
which drops idle buckets on its own; the others are stateless.
"""

from __future__ import annotations

import re
import time
from typing import Iterable, List, Optional

import discord
from discord.ext import commands

from casekeeper.automod.base import (
    AutomodEvent,
    AutomodVerdict,
    Detector,
    MemberEvent,
    MessageEvent,
    host_matches,
    iter_url_hosts,
)
from casekeeper.datatypes.punishment_datatypes import FullMember, PunishmentRequest, PunishmentType
from casekeeper.util.logger import get_logger

logger = get_logger("automod_detectors")

MESSAGE_LINK_PATTERN = re.compile(
    r"https?://(?:(?:ptb|canary)\.)?discord(?:app)?\.com/channels/(\d+)/(\d+)/(\d+)",
    re.IGNORECASE,
)


def _timestamp(value) -> float:
    return value.timestamp() if value is not None else time.time()


class SpamDetector(Detector):
    """More than ``max_messages`` messages from one member within ``per_seconds``."""

    name = "spam"
    settings_flag = "automod_spam"

    def __init__(self, max_messages: int, per_seconds: float, mute_seconds: int) -> None:
        self.max_messages = max_messages
        self.per_seconds = per_seconds
        self.mute_seconds = mute_seconds
        self._cooldowns = commands.CooldownMapping.from_cooldown(
            max_messages, per_seconds, commands.BucketType.member
        )

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MessageEvent):
            return None

        message = event.message
        current = _timestamp(message.created_at)
        bucket = self._cooldowns.get_bucket(message, current)
        if bucket.update_rate_limit(current) is None:
            return None

        bucket.reset()
        reason = f"Sent more than {self.max_messages} messages in {self.per_seconds:g} seconds"
        options = {"reason": reason}
        if self.mute_seconds > 0:
            options["time"] = self.mute_seconds * 1000
        return AutomodVerdict(
            detector=self.name,
            reason=reason,
            delete_message=True,
            punishment=PunishmentRequest.create(FullMember(event.author), event.guild.me, PunishmentType.MUTE, **options),
        )


class RaidDetector(Detector):
    """More than ``max_joins`` joins in a guild within ``per_seconds``; kicks the newcomer."""

    name = "raid"
    settings_flag = "automod_raid"

    def __init__(self, max_joins: int, per_seconds: float) -> None:
        self.max_joins = max_joins
        self.per_seconds = per_seconds
        self._cooldowns = commands.CooldownMapping.from_cooldown(
            max_joins, per_seconds, commands.BucketType.guild
        )

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MemberEvent) or not event.joined:
            return None

        current = _timestamp(event.member.joined_at)
        bucket = self._cooldowns.get_bucket(event.member, current)
        if bucket.update_rate_limit(current) is None:
            return None

        reason = f"Raid protection: more than {self.max_joins} joins in {self.per_seconds:g} seconds"
        return AutomodVerdict(
            detector=self.name,
            reason=reason,
            punishment=PunishmentRequest.create(
                FullMember(event.member), event.guild.me, PunishmentType.KICK, reason=reason
            ),
        )


class PhishingDetector(Detector):
    """Links to a known phishing domain; deletes the message and bans the author."""

    name = "phishing"
    settings_flag = "automod_phishing"

    def __init__(self, domains: Iterable[str]) -> None:
        self.domains: List[str] = [d.lower() for d in domains]

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MessageEvent):
            return None

        for host in iter_url_hosts(event.message.content):
            if any(host_matches(host, domain) for domain in self.domains):
                reason = f"Posted a phishing link ({host})"
                return AutomodVerdict(
                    detector=self.name,
                    reason=reason,
                    delete_message=True,
                    punishment=PunishmentRequest.create(
                        FullMember(event.author), event.guild.me, PunishmentType.BAN, reason=reason, days=1
                    ),
                )
        return None


class BlacklistDetector(Detector):
    """Messages containing one of the guild's blacklisted words; deletes and warns."""

    name = "blacklist"
    settings_flag = "automod_blacklist"

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MessageEvent) or not event.settings.blacklist_words:
            return None

        content = (event.message.content or "").lower()
        for word in event.settings.blacklist_words:
            if re.search(rf"(?<!\w){re.escape(word.lower())}(?!\w)", content):
                reason = "Used a blacklisted word"
                return AutomodVerdict(
                    detector=self.name,
                    reason=reason,
                    delete_message=True,
                    punishment=PunishmentRequest.create(
                        FullMember(event.author), event.guild.me, PunishmentType.WARNING_ADDED, reason=reason, amount=1
                    ),
                )
        return None


class DehoistDetector(Detector):
    """Display names starting with a character that sorts them to the top of the member list."""

    name = "dehoist"
    settings_flag = "automod_dehoist"
    fallback_nickname = "Dehoisted"

    def __init__(self, hoist_characters: str) -> None:
        self.hoist_characters = hoist_characters

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MemberEvent):
            return None

        display_name = event.member.display_name or ""
        if not display_name or display_name[0] not in self.hoist_characters:
            return None

        stripped = display_name.lstrip(self.hoist_characters).strip()
        return AutomodVerdict(
            detector=self.name,
            reason="Hoisting display name",
            nickname=stripped[:32] or self.fallback_nickname,
        )


class MessageLinkDetector(Detector):
    """Quotes a message linked from the same guild."""

    name = "message_links"
    settings_flag = "automod_message_links"

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MessageEvent):
            return None

        match = MESSAGE_LINK_PATTERN.search(event.message.content or "")
        if match is None:
            return None

        guild_id, channel_id, message_id = (int(part) for part in match.groups())
        guild = event.guild
        if guild_id != guild.id:
            return None

        channel = guild.get_channel_or_thread(channel_id)
        if channel is None or not channel.permissions_for(event.author).read_messages:
            return None

        try:
            linked = await channel.fetch_message(message_id)
        except discord.HTTPException as exc:
            logger.debug("[AUTOMOD] Could not fetch linked message %s: %s", message_id, exc)
            return None

        return AutomodVerdict(detector=self.name, reason="Linked a message", quote=linked)


class ShortlinkDetector(Detector):
    """Links through a URL shortener; deletes the message."""

    name = "shortlinks"
    settings_flag = "automod_shortlinks"

    def __init__(self, domains: Iterable[str]) -> None:
        self.domains: List[str] = [d.lower() for d in domains]

    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        if not isinstance(event, MessageEvent):
            return None

        for host in iter_url_hosts(event.message.content):
            if any(host_matches(host, domain) for domain in self.domains):
                return AutomodVerdict(
                    detector=self.name,
                    reason=f"Posted a shortened link ({host})",
                    delete_message=True,
                )
        return None
