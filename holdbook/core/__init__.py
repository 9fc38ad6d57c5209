from .base import BaseRepository, BaseService, IService, UnitOfWorkFactory
from .clock import Clock, ManualClock, SystemClock, ensure_utc
from .exceptions import (
    AuthorizationError,
    BaseError,
    DomainError,
    ErrorCode,
    NotFoundError,
    SystemFailure,
    ValidationError,
)
from .config import Settings, get_settings

__all__ = [
    # Base classes
    "BaseRepository",
    "BaseService",
    "IService",
    "UnitOfWorkFactory",

    # Time
    "Clock",
    "ManualClock",
    "SystemClock",
    "ensure_utc",

    # Exceptions
    "AuthorizationError",
    "BaseError",
    "DomainError",
    "ErrorCode",
    "NotFoundError",
    "SystemFailure",
    "ValidationError",

    # Config
    "Settings",
    "get_settings",
]
