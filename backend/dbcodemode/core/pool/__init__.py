"""
MySQL connection and connection pool for the core tool group.
"""

from .connect import MySQLTarget, connect, cursor_to_dicts, execute
from .manager import PoolManager, get_pool_manager

__all__ = [
    "MySQLTarget",
    "connect",
    "execute",
    "cursor_to_dicts",
    "PoolManager",
    "get_pool_manager",
]
