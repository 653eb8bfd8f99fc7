"""
Device manager dependency.

The manager is created with the application and stored on app.state,
so every request handler works on the same set of devices.
"""

from fastapi import HTTPException, Request, status

from pegasus_astro.services.device.device_manager import DeviceManager


def get_device_manager(request: Request) -> DeviceManager:
    """Return the application's DeviceManager"""
    manager = getattr(request.app.state, "device_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Device manager not initialized",
        )
    return manager
