"""Immutable data transfer objects returned by the engine."""
