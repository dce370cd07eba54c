"""
Configuration module for the pose fusion filter.

This module provides centralized configuration management for filter
noise levels, update policies, the demo replay and logging.
"""

from config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
