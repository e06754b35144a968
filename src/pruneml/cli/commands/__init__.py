"""Command implementations for the pruneml CLI."""
