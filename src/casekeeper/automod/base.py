"""Event, verdict and detector types shared by every automod detector."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional, Union
from urllib.parse import urlsplit

import discord

from casekeeper.datatypes.guild_settings import GuildSettings
from casekeeper.datatypes.punishment_datatypes import PunishmentRequest

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """A message posted in a guild, with the guild's settings at that moment."""

    message: discord.Message
    settings: GuildSettings

    @property
    def guild(self) -> discord.Guild:
        return self.message.guild

    @property
    def author(self) -> discord.Member:
        return self.message.author


@dataclass(frozen=True, slots=True)
class MemberEvent:
    """A member joined the guild (``joined``) or changed their profile."""

    member: discord.Member
    settings: GuildSettings
    joined: bool = True

    @property
    def guild(self) -> discord.Guild:
        return self.member.guild


AutomodEvent = Union[MessageEvent, MemberEvent]


@dataclass(slots=True)
class AutomodVerdict:
    """What the listener should do about an event.

    Attributes:
        detector: Name of the detector that produced the verdict.
        reason: Human readable reason, also used in audit logs.
        delete_message: Delete the triggering message.
        punishment: Punishment to hand to the executor.
        nickname: New nickname for the member (dehoisting).
        quote: Linked message to quote in the triggering channel.
    """

    detector: str
    reason: str
    delete_message: bool = False
    punishment: Optional[PunishmentRequest] = None
    nickname: Optional[str] = None
    quote: Optional[discord.Message] = None


class Detector(ABC):
    """One automod rule, toggled per guild through ``settings_flag``."""

    name: str = ""
    settings_flag: str = ""

    def enabled_for(self, settings: GuildSettings) -> bool:
        return bool(getattr(settings, self.settings_flag, False))

    @abstractmethod
    async def evaluate(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        """Return a verdict when the event breaks the rule, otherwise None."""


def iter_url_hosts(content: str) -> Iterator[str]:
    """Yield the lower-cased host of every http(s) URL in ``content``."""
    for match in URL_PATTERN.finditer(content or ""):
        try:
            host = urlsplit(match.group(0)).hostname
        except ValueError:
            continue
        if host:
            yield host.lower().rstrip(".")


def host_matches(host: str, domain: str) -> bool:
    """True if ``host`` is ``domain`` or one of its subdomains."""
    domain = domain.lower().strip(".")
    return host == domain or host.endswith("." + domain)
