"""
Configuration for the API, storage and tile delivery.
"""

from .config import Settings, settings

__all__ = ['Settings', 'settings']
