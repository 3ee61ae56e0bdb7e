"""Redis-backed caching helpers."""
