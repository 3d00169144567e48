"""
NetPulse Request Analytics
Configuration Module
"""
from .settings import PERIOD_TYPES, Settings, get_settings

__all__ = ["PERIOD_TYPES", "Settings", "get_settings"]
