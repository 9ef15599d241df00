from __future__ import annotations

from .database import DatabaseConfig
from .remote import KiojuConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import SyncConfig

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "KiojuConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
