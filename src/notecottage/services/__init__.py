"""Service layer for NoteCottage."""
