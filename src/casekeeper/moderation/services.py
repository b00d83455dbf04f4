"""
Explicit construction of the moderation services.

``build_services`` is called once at startup and the returned
:class:`ModerationServices` is attached to the bot, where cogs pick it up.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import discord

from casekeeper.automod.base import Detector
from casekeeper.automod.registry import build_detectors
from casekeeper.configuration.app_configuration import AppConfig, app_config
from casekeeper.database.db_connection import ConnectionManager, db_connection
from casekeeper.moderation.case_ledger import CaseLedger
from casekeeper.moderation.modlog import ModLogPublisher
from casekeeper.moderation.punishment_executor import PunishmentExecutor
from casekeeper.moderation.warnings import WarningAccumulator
from casekeeper.scheduler.reversal_scheduler import ReversalScheduler
from casekeeper.settings.guild_settings_db import GuildSettingsDB
from casekeeper.settings.guild_settings_manager import GuildSettingsManager


@dataclass
class ModerationServices:
    """Every long-lived moderation component, wired together."""

    settings: GuildSettingsManager
    ledger: CaseLedger
    scheduler: ReversalScheduler
    modlog: ModLogPublisher
    executor: PunishmentExecutor
    warnings: WarningAccumulator
    detectors: List[Detector]
    default_ban_days: int = 7

    async def start(self) -> None:
        """Load persisted settings and pending reversals."""
        await self.settings.async_init()
        await self.scheduler.load()

    async def shutdown(self) -> None:
        await self.warnings.wait_pending()
        await self.scheduler.shutdown()
        await self.settings.shutdown()


def build_services(
    bot: discord.Client,
    *,
    config: Optional[AppConfig] = None,
    db: Optional[ConnectionManager] = None,
) -> ModerationServices:
    """Construct and wire the moderation services for ``bot``."""
    config = config or app_config
    db = db or db_connection

    settings = GuildSettingsManager(GuildSettingsDB(db))
    ledger = CaseLedger(db)
    scheduler = ReversalScheduler(db)
    modlog = ModLogPublisher(bot, settings, ledger)
    executor = PunishmentExecutor(
        bot,
        ledger,
        settings,
        scheduler,
        modlog,
        muted_role_name=config.muted_role_name,
    )
    warnings = WarningAccumulator(db, ledger, executor)
    executor.warnings = warnings
    scheduler.bind(executor.apply_reversal)

    return ModerationServices(
        settings=settings,
        ledger=ledger,
        scheduler=scheduler,
        modlog=modlog,
        executor=executor,
        warnings=warnings,
        detectors=build_detectors(config.automod),
        default_ban_days=config.default_ban_days,
    )
