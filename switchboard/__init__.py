"""Switchboard -- action discovery and dispatch for a Discord bot and its HTTP API."""
