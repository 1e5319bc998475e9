"""Command line interface for chatlens."""
