"""
Core Components

Configuration shared by the adapters and the CLI.
"""

from dbadapter.core.config import settings, Settings

__all__ = [
    "settings",
    "Settings",
]
