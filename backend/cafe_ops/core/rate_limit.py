"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from cafe_ops.core.config import settings
from cafe_ops.core.rbac import DEVICE_ID_HEADER


def get_device_or_ip(request: Request) -> str:
    """Rate limit by device ID if present, else by IP."""
    device_id = request.headers.get(DEVICE_ID_HEADER, "").strip()
    if device_id:
        return f"device:{device_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_device_or_ip, enabled=settings.rate_limit_enabled)
