"""
Devices Router

Handles the RPC control plane:
- Listing connected devices with their properties
- Setting a device property
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from pegasus_astro.api.dependencies import get_device_manager
from pegasus_astro.common.exceptions import DeviceAction, DeviceError, DeviceNotFoundError
from pegasus_astro.common.logging_setup import get_service_logger
from pegasus_astro.services.device.device_manager import DeviceManager

logger = get_service_logger("rpc")

router = APIRouter()


# ============================================
# SCHEMAS
# ============================================

class PropertyResponse(BaseModel):
    """One device property, value in its wire representation."""
    name: str
    value: str
    kind: str  # 'integer', 'float', 'boolean', 'string'
    permission: str  # 'ReadOnly', 'WriteOnly', 'ReadWrite'


class DeviceResponse(BaseModel):
    """Connected device."""
    id: str
    name: str
    address: str  # Serial port path
    baud: int
    properties: list[PropertyResponse]


class SetPropertyRequest(BaseModel):
    """Set property request. Empty fields are rejected with INVALID_VALUE."""
    device_id: str = ""
    property_name: str = ""
    property_value: str = ""


class SetPropertyResponse(BaseModel):
    """Outcome of a property write as a DeviceAction code."""
    status: int


# ============================================
# ENDPOINTS
# ============================================

@router.get("", response_model=list[DeviceResponse])
async def list_devices(
    manager: DeviceManager = Depends(get_device_manager),
):
    """
    List all connected devices.

    Each device carries its full property table in schema order.
    """
    return [device.snapshot() for device in manager.get_devices()]


@router.post("/properties", response_model=SetPropertyResponse)
async def set_property(
    request: SetPropertyRequest,
    manager: DeviceManager = Depends(get_device_manager),
):
    """
    Write a property on a device.

    The response status is a DeviceAction code (0 = OK). An unknown
    device id is a 404.
    """
    if not request.device_id or not request.property_name or not request.property_value:
        return SetPropertyResponse(status=int(DeviceAction.INVALID_VALUE))

    logger.debug(
        f"Updating property {request.property_name} for {request.device_id} "
        f"to {request.property_value}"
    )

    try:
        await manager.update_property(
            request.device_id,
            request.property_name,
            request.property_value,
        )
    except DeviceNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Device {request.device_id} not found",
        )
    except DeviceError as e:
        return SetPropertyResponse(status=int(e.action))

    return SetPropertyResponse(status=int(DeviceAction.OK))
