"""Command line interface for acecards."""
