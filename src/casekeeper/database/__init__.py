"""SQLite connection, schema and lifecycle."""
