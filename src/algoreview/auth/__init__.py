"""Caller identity from the upstream gateway."""
