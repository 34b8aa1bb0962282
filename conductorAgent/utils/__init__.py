"""Shared helpers: logging, error types, prompt rendering and message utilities."""
