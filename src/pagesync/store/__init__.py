"""Chunk persistence and ingestion."""
