"""Asyncio services built on the core framework."""
