"""Role-Based Access Control (RBAC) utilities.

Callers are identified by device headers (``X-Device-ID`` and
``X-Device-Role``) set by the owner dashboard, the cashier tablet and the
stock-keeper device.
"""

from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status


class StaffRole(str, Enum):
    """Staff roles for RBAC."""

    OWNER = "owner"
    KASIR = "kasir"  # cashier
    STOK = "stok"  # stock keeper


DEVICE_ID_HEADER = "X-Device-ID"
DEVICE_ROLE_HEADER = "X-Device-Role"


class DeviceCaller:
    """Identity of the device making the request.

    Attributes:
        device_id: Identifier of the registered device.
        role: The staff role the device operates as.
        ip_address: Client IP address, when known.
    """

    def __init__(self, device_id: str, role: StaffRole, ip_address: str = ""):
        self.device_id = device_id
        self.role = role
        self.ip_address = ip_address


def parse_role(raw: Optional[str]) -> Optional[StaffRole]:
    """Parse a role header value; ``device_<role>`` is the same as ``<role>``."""
    if not raw:
        return None
    value = raw.strip().lower()
    if value.startswith("device_"):
        value = value[len("device_"):]
    try:
        return StaffRole(value)
    except ValueError:
        return None


async def get_current_caller(request: Request) -> DeviceCaller:
    """Get the calling device from the request headers."""
    device_id = request.headers.get(DEVICE_ID_HEADER, "").strip()
    raw_role = request.headers.get(DEVICE_ROLE_HEADER)

    if not device_id or not raw_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing device identity",
        )

    role = parse_role(raw_role)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {raw_role}",
        )

    ip_address = request.client.host if request.client else ""
    return DeviceCaller(device_id=device_id, role=role, ip_address=ip_address)


def require_roles(*allowed: StaffRole):
    """Dependency to require one of the given roles."""

    async def role_checker(
        caller: Annotated[DeviceCaller, Depends(get_current_caller)]
    ) -> DeviceCaller:
        if caller.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {' or '.join(r.value for r in allowed)}",
            )
        return caller

    return role_checker


# Common role dependencies
RequireOwner = Annotated[DeviceCaller, Depends(require_roles(StaffRole.OWNER))]
RequireOwnerOrStok = Annotated[DeviceCaller, Depends(require_roles(StaffRole.OWNER, StaffRole.STOK))]
RequireOwnerOrKasir = Annotated[DeviceCaller, Depends(require_roles(StaffRole.OWNER, StaffRole.KASIR))]
RequireStaff = Annotated[
    DeviceCaller,
    Depends(require_roles(StaffRole.OWNER, StaffRole.KASIR, StaffRole.STOK)),
]
