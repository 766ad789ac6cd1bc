"""Shared utilities: logging and time helpers."""
