"""Command line interface for imagewatch."""
