"""
RPC API - HTTP/JSON control plane

- GET  /api/devices             connected devices and their properties
- POST /api/devices/properties  set a property, returns a DeviceAction code
- GET  /health
"""

from .main import create_app

__all__ = ["create_app"]
