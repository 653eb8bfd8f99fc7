"""Shared FastAPI dependencies"""

from .devices import get_device_manager

__all__ = ["get_device_manager"]
