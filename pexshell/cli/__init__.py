"""Command line interface for pexshell."""
