"""
Utils package
"""

from resumerefresh.utils.config import Settings, get_settings
from resumerefresh.utils.database import Database, get_db

__all__ = [
    "Settings",
    "get_settings",
    "Database",
    "get_db",
]
