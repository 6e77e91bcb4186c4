"""Command-line client for the Bento email-marketing API."""

__version__ = "0.1.0"
