"""Discord-facing layer: cogs and listeners."""
