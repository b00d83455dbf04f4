"""
Casekeeper Moderation Bot
=========================

A Discord bot that applies moderation punishments, keeps a numbered case
ledger per guild, accumulates warnings with threshold punishments, publishes
mod-log messages and runs automod detectors.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. CASEKEEPER_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("CASEKEEPER_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from casekeeper.database.database import database
from casekeeper.moderation.services import build_services
from casekeeper.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Returns
    -------
    str
        Discord bot token extracted from the loaded environment.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents required by the moderation features.

    Returns
    -------
    discord.Intents
        Intents enabling guild, member, message and voice state events.
    """
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    intents.voice_states = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot) -> None:
    """Register all operational cogs with the provided Discord bot instance."""
    from casekeeper.bot.cogs import automod_listener, moderation_cmds, settings_cmds

    moderation_cmds.setup(discord_bot_instance)
    settings_cmds.setup(discord_bot_instance)
    automod_listener.setup(discord_bot_instance)

    logger.info("All cogs loaded successfully.")


def create_bot() -> discord.Bot:
    """Instantiate the Discord bot, attach the moderation services and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    bot.services = build_services(bot)
    load_cogs(bot)
    return bot


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None = None) -> None:
    """Gracefully stop the Discord bot, the moderation services and the database."""
    if bot is not None:
        if not bot.is_closed():
            try:
                await bot.close()
            except Exception as exc:
                logger.exception("Error while closing the Discord bot: %s", exc)

        services = getattr(bot, "services", None)
        if services is not None:
            try:
                await services.shutdown()
            except Exception as exc:
                logger.exception("Error during moderation services shutdown: %s", exc)

    try:
        await database.shutdown()
    except Exception as exc:
        logger.exception("Error during database shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database, services and bot, returning an exit code."""
    token = load_environment()

    logger.info("Initializing database...")
    if not await database.initialize():
        logger.critical("Failed to initialize database.")
        return 1

    try:
        bot = create_bot()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await database.shutdown()
        return 1

    try:
        await bot.services.start()
    except Exception as exc:
        logger.critical("Failed to load moderation state: %s", exc)
        await shutdown_runtime(bot)
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot)

    return exit_code


def main() -> int:
    """Entry point used by the console script."""
    sys.excepthook = handle_exception
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user; exiting.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
