"""Command line interface for release-bot."""
