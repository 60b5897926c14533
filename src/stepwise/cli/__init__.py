"""Command-line interface for Stepwise."""
