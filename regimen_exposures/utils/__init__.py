"""Shared interval and set helpers."""
