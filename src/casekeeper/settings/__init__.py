"""Per-guild settings: in-memory cache backed by the guild_settings tables."""
