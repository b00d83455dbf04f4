"""
Database schema initialization and migration management.

Handles creation of tables, indexes, triggers, and schema version tracking.
"""

import aiosqlite
from casekeeper.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Manages database schema creation and migrations.

    Provides methods to initialize and update the database schema,
    including tables, indexes, and triggers."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create or update all database tables, indexes, and triggers.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Guild settings table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_settings (
                guild_id INTEGER PRIMARY KEY,
                modlog_channel_id INTEGER,
                muted_role_id INTEGER,
                automod_spam INTEGER NOT NULL DEFAULT 0,
                automod_raid INTEGER NOT NULL DEFAULT 0,
                automod_phishing INTEGER NOT NULL DEFAULT 0,
                automod_blacklist INTEGER NOT NULL DEFAULT 0,
                automod_dehoist INTEGER NOT NULL DEFAULT 0,
                automod_message_links INTEGER NOT NULL DEFAULT 0,
                automod_shortlinks INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Blacklisted words table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_blacklist_words (
                guild_id INTEGER NOT NULL,
                word TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (guild_id, word),
                FOREIGN KEY (guild_id) REFERENCES guild_settings(guild_id) ON DELETE CASCADE
            )
        """)

        # Case ledger; case_index is allocated per guild
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_cases (
                guild_id INTEGER NOT NULL,
                case_index INTEGER NOT NULL,
                victim_id INTEGER NOT NULL,
                moderator_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                reason TEXT,
                attachments TEXT NOT NULL DEFAULT '[]',
                soft INTEGER NOT NULL DEFAULT 0,
                time INTEGER,
                message_id INTEGER,
                warning_amount INTEGER,
                voice_channel_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (guild_id, case_index)
            )
        """)

        # Warning grants (positive) and removals (negative)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS warnings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id INTEGER NOT NULL,
                member_id INTEGER NOT NULL,
                amount INTEGER NOT NULL,
                reason TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Threshold punishments
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_punishments (
                guild_id INTEGER NOT NULL,
                warnings INTEGER NOT NULL CHECK (warnings > 0),
                type TEXT NOT NULL,
                time INTEGER,
                soft INTEGER NOT NULL DEFAULT 0,
                days INTEGER NOT NULL DEFAULT 7,
                PRIMARY KEY (guild_id, warnings)
            )
        """)

        # Pending timed reversals (unban, unmute, ...)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS scheduled_reversals (
                guild_id INTEGER NOT NULL,
                victim_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                moderator_id INTEGER NOT NULL,
                run_at INTEGER NOT NULL,
                PRIMARY KEY (guild_id, victim_id, type)
            )
        """)

        # Schema version table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for the hot lookups."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_blacklist_words_guild ON guild_blacklist_words(guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_cases_victim ON guild_cases(guild_id, victim_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_warnings_member ON warnings(guild_id, member_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_scheduled_reversals_run_at ON scheduled_reversals(run_at)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers for automatic timestamp updates."""
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_guild_settings_timestamp
            AFTER UPDATE ON guild_settings
            FOR EACH ROW
            BEGIN
                UPDATE guild_settings SET updated_at = CURRENT_TIMESTAMP
                WHERE guild_id = NEW.guild_id;
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        """Update schema version tracking."""
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
