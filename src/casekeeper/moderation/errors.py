"""
Exception hierarchy for the punishment workflow.

- :class:`ValidationError` is raised before any side effect (bad options,
  negative warning totals, nothing to remove).
- :class:`EntitlementDenied` is raised when the hierarchy or permission gate
  refuses an action; no platform call and no case happen.
- :class:`PlatformError` wraps a failed Discord REST call. The original
  ``discord.HTTPException`` is kept as ``__cause__``; no case is recorded.

Everything derives from :class:`PunishmentError` so command handlers can turn
any of them into a user-facing reply with a single ``except``.
"""

from __future__ import annotations


class PunishmentError(Exception):
    """Base class for every failure a punishment request can end with."""

    user_message: str = "Unable to complete that moderation action."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class ValidationError(PunishmentError):
    """The request itself is invalid; nothing was changed."""

    user_message = "That request is not valid."


class EntitlementDenied(PunishmentError):
    """Hierarchy or permission rules forbid the action."""

    user_message = "I cannot act on that member."


class PlatformError(PunishmentError):
    """Discord rejected the action (network, permission or unknown snowflake)."""

    user_message = "Discord rejected that action."
