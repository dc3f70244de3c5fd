"""Data layer - server, account and result envelope models."""

from .models import (
    ApiResult,
    Server,
    ServerUser,
    EnrichedUser,
    NewUser,
    UserStatus,
    UserKey,
    parse_servers,
    parse_users,
)

__all__ = [
    "ApiResult",
    "Server",
    "ServerUser",
    "EnrichedUser",
    "NewUser",
    "UserStatus",
    "UserKey",
    "parse_servers",
    "parse_users",
]
