"""Peer-to-peer chat: SQLite storage, an aiohttp message server, background fetchers and a terminal client."""

__version__ = "0.1.0"