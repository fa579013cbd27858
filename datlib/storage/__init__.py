"""Storage — the persisted library index and the per-archive directory layout."""
