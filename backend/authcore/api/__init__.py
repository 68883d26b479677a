# Authcore API
from authcore.api.auth import get_auth_service, get_current_principal
from authcore.api.auth import router as auth_router
from authcore.api.errors import register_exception_handlers
from authcore.api.health import router as health_router

__all__ = [
    "auth_router",
    "health_router",
    "get_auth_service",
    "get_current_principal",
    "register_exception_handlers",
]
