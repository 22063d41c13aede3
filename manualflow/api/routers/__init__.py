"""API routers for manualflow."""

from . import approvals
from . import manuals
from . import notifications

__all__ = [
    "approvals",
    "manuals",
    "notifications",
]
