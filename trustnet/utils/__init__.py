"""
Utility Modules

Configuration loading and the reference store.
"""

from trustnet.utils.config import load_config, Config
from trustnet.utils.store import InMemoryStore

__all__ = ["load_config", "Config", "InMemoryStore"]
