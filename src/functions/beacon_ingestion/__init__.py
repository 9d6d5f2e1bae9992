"""Beacon chain slot ingestion and graffiti statistics."""
