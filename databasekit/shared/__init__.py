"""Shared helpers used across the database kit."""
