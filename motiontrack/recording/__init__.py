"""Capture-cycle orchestration, recorded sessions and their persistence."""
