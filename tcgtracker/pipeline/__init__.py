"""Ingestion, cursoring and retention jobs."""
