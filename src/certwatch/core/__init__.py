"""Ingestion core: fetch, normalize, discover, extract, dedupe, orchestrate."""
