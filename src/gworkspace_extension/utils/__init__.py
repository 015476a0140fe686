"""Utility helpers for gworkspace-extension."""
