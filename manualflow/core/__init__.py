"""Core domain logic for manualflow."""
