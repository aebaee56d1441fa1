"""Data models for imgnote."""
