"""Database layer for manualflow."""
