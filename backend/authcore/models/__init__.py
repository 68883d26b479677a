# Authcore Models
from authcore.models.base import BaseModel
from authcore.models.device_login import DeviceLoginRecord
from authcore.models.failed_attempt import FailedAttempt
from authcore.models.one_time_code import OneTimeCode
from authcore.models.principal import Principal
from authcore.models.refresh_session import RefreshSession
from authcore.models.token_blacklist import BlacklistedToken

__all__ = [
    "BaseModel",
    "BlacklistedToken",
    "DeviceLoginRecord",
    "FailedAttempt",
    "OneTimeCode",
    "Principal",
    "RefreshSession",
]
