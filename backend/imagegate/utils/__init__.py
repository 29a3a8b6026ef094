"""Helpers shared across the service."""
