"""Schema-driven command line client for a remote management API."""

__version__ = "0.4.0"
