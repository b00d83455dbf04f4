"""The fixed list of automod detectors, built once at startup."""

from typing import List

from casekeeper.automod.base import Detector
from casekeeper.automod.detectors import (
    BlacklistDetector,
    DehoistDetector,
    MessageLinkDetector,
    PhishingDetector,
    RaidDetector,
    ShortlinkDetector,
    SpamDetector,
)
from casekeeper.configuration.app_configuration import AutomodSettings


def build_detectors(settings: AutomodSettings) -> List[Detector]:
    """Instantiate every detector with its configuration."""
    return [
        SpamDetector(settings.spam_max_messages, settings.spam_per_seconds, settings.spam_mute_seconds),
        RaidDetector(settings.raid_max_joins, settings.raid_per_seconds),
        PhishingDetector(settings.phishing_domains),
        BlacklistDetector(),
        DehoistDetector(settings.hoist_characters),
        MessageLinkDetector(),
        ShortlinkDetector(settings.shortlink_domains),
    ]
