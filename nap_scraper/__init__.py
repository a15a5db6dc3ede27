"""Scraper for National Adaptation Plans published on NAP Central."""

from .pipeline import get_cached, get_naps, refresh

__all__ = ["get_cached", "get_naps", "refresh"]
