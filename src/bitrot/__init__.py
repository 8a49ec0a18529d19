"""Bitrot - community release database with Discogs enrichment."""

__version__ = "0.1.0"
