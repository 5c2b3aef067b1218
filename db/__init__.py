"""Database helpers for the track registry."""

from db.track_registry import RegistryEntry, TrackRegistry

__all__ = ["RegistryEntry", "TrackRegistry"]
