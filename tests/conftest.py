"""
Pytest configuration and fixtures for casekeeper tests.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

from casekeeper.configuration.app_configuration import AppConfig  # noqa: E402
from casekeeper.database.db_connection import ConnectionManager  # noqa: E402
from casekeeper.database.db_schema import SchemaManager  # noqa: E402
from casekeeper.moderation.services import build_services  # noqa: E402

from fakes import build_guild, build_member  # noqa: E402


@pytest.fixture
async def db(tmp_path):
    """A schema-initialized database in a temporary directory."""
    manager = ConnectionManager()
    await manager.open(tmp_path / "casekeeper.db")
    await SchemaManager.initialize_schema(manager.connection)
    yield manager
    await manager.close()


@pytest.fixture
def guild():
    return build_guild()


@pytest.fixture
def moderator(guild):
    return build_member(guild, member_id=200, position=50, name="moderator")


@pytest.fixture
def target(guild):
    return build_member(guild, member_id=300, position=5, name="target")


@pytest.fixture
def bot(guild):
    bot = MagicMock()
    bot.get_guild.side_effect = lambda guild_id: guild if guild_id == guild.id else None
    bot.get_user.return_value = None
    return bot


@pytest.fixture
async def services(bot, db, tmp_path):
    """Fully wired moderation services backed by the temporary database."""
    services = build_services(bot, config=AppConfig(tmp_path / "app_config.yml"), db=db)
    await services.start()
    yield services
    await services.shutdown()
