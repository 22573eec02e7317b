"""Playwright-based catalog downloader that stores chapters as token records."""

__version__ = "0.3.0"
