"""
mottrack I/O Package

Configuration loading.
"""

from .config_loader import TrackingConfigLoader, load_tracker_params

__all__ = ["TrackingConfigLoader", "load_tracker_params"]
