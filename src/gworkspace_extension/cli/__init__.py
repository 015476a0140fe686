"""Command-line interface for gworkspace-extension."""
