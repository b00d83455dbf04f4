"""Dataclasses and enums shared across the bot."""
