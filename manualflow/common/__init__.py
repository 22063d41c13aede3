"""Shared utilities for manualflow."""
