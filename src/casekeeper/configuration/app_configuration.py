from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from casekeeper.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_PHISHING_DOMAINS = [
    "discord-nitro.gift",
    "dlscord.gift",
    "discordgift.site",
    "steamcommunnity.com",
    "steamcommunitty.ru",
]

DEFAULT_SHORTLINK_DOMAINS = [
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
    "t.co",
    "is.gd",
    "cutt.ly",
    "rebrand.ly",
    "shorturl.at",
]

DEFAULT_HOIST_CHARACTERS = "!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~"


@dataclass(slots=True)
class AutomodSettings:
    """Typed view over the ``automod`` section of the application config."""

    spam_max_messages: int = 5
    spam_per_seconds: float = 5.0
    spam_mute_seconds: int = 600
    raid_max_joins: int = 10
    raid_per_seconds: float = 10.0
    phishing_domains: List[str] = field(default_factory=lambda: list(DEFAULT_PHISHING_DOMAINS))
    shortlink_domains: List[str] = field(default_factory=lambda: list(DEFAULT_SHORTLINK_DOMAINS))
    hoist_characters: str = DEFAULT_HOIST_CHARACTERS

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "AutomodSettings":
        """Build settings from the raw YAML mapping, ignoring malformed values."""
        settings = cls()
        spam = data.get("spam", {})
        if isinstance(spam, dict):
            settings.spam_max_messages = int(spam.get("max_messages", settings.spam_max_messages))
            settings.spam_per_seconds = float(spam.get("per_seconds", settings.spam_per_seconds))
            settings.spam_mute_seconds = int(spam.get("mute_seconds", settings.spam_mute_seconds))

        raid = data.get("raid", {})
        if isinstance(raid, dict):
            settings.raid_max_joins = int(raid.get("max_joins", settings.raid_max_joins))
            settings.raid_per_seconds = float(raid.get("per_seconds", settings.raid_per_seconds))

        phishing = data.get("phishing_domains")
        if isinstance(phishing, list):
            settings.phishing_domains = [str(d).lower() for d in phishing]

        shortlinks = data.get("shortlink_domains")
        if isinstance(shortlinks, list):
            settings.shortlink_domains = [str(d).lower() for d in shortlinks]

        hoist = data.get("hoist_characters")
        if isinstance(hoist, str) and hoist:
            settings.hoist_characters = hoist
        return settings


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes
    dictionary-like access helpers plus typed shortcuts for the moderation
    and automod sections. Uses fcntl file locks for safe concurrent access
    across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        value = self._data.get(name, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Path of the SQLite database file (``database.path``, default ``./data/app.db``)."""
        raw = self._section("database").get("path") or "./data/app.db"
        return Path(str(raw)).resolve()

    @property
    def muted_role_name(self) -> str:
        """Name used when the muted role has to be created."""
        return str(self._section("moderation").get("muted_role_name") or "Muted")

    @property
    def default_ban_days(self) -> int:
        """Days of message history purged by a ban when the moderator does not say otherwise."""
        try:
            days = int(self._section("moderation").get("default_ban_days", 7))
        except (TypeError, ValueError):
            return 7
        return max(0, min(7, days))

    @property
    def automod(self) -> AutomodSettings:
        """Return the automod section wrapped in :class:`AutomodSettings`."""
        return AutomodSettings.from_mapping(self._section("automod"))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
