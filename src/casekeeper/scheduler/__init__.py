"""Timed reversal scheduling."""
