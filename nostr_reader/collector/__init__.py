"""Relay access, caching and thread reconstruction."""
