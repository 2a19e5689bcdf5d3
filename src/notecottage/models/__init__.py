"""Data models for NoteCottage."""
