"""Switchboard runtime -- action framework, Discord adapters, and HTTP server."""

__version__ = "1.0.0"
