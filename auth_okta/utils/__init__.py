"""Utility helpers for URLs, user agents and state tokens."""
