"""Shared helpers: cipher, errors, logging, concurrency."""
