"""manualflow: manual versioning and approval workflow backend."""

__version__ = "0.1.0"
