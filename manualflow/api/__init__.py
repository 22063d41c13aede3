"""HTTP API for manualflow."""
