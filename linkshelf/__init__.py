"""Local-first bookmark store synchronized with the Kioju API."""

__version__ = "1.0.0"
