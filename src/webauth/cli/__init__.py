"""Command-line interface for webauth."""
