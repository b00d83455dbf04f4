"""Automod detectors and the events they evaluate."""
