"""Thin CRUD classes over the moderation tables; each method takes an open aiosqlite connection."""
