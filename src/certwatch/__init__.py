"""
certwatch - Green certificate tender ingestion pipeline.

Fetches announcement pages from operator-registered sources, detects
changes, extracts transaction records and stores only unseen ones.
"""

__version__ = "0.1.0"
__app_name__ = "certwatch"
