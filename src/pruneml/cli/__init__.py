"""Command-line interface for pruneml."""
