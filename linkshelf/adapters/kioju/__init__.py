from __future__ import annotations

from .client import KiojuClient

__all__ = ["KiojuClient"]
