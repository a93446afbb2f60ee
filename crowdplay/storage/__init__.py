"""
Storage Layer.

This package handles all local persistence: the configuration file and the
local storage document that backs the vote ledger.
"""

from .config_manager import ConfigManager
from .local_storage import LocalStorage

__all__ = ["ConfigManager", "LocalStorage"]
