"""Crawl frontier, fetchers and command-line entry point."""
