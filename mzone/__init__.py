"""MZone subscription backend."""
