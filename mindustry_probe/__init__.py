"""Mindustry server status probe."""

__version__ = "0.1.0"
