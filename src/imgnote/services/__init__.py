"""Annotation services built on the storage layer."""
