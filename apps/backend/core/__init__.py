"""Shared helpers: configuration, HTTP client, URL and text normalization."""
