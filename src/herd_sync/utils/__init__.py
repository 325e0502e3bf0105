"""Utility helpers for herd-sync."""
