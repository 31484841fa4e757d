"""App catalog crawler: hosted and local project ingestion, classification and activity."""

__version__ = "1.0.0"
