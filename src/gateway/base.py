"""Base gateway interface for the account management backend."""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..data.models import ApiResult, NewUser, Server, ServerUser


class BackendGateway(ABC):
    """Abstract interface to the backend that owns servers and accounts.

    Every operation returns an ApiResult. Implementations must convert
    transport failures, error statuses and malformed payloads into a failed
    result; callers only ever branch on `success`.
    """

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Origin all backend paths are resolved against."""
        pass

    @abstractmethod
    def list_servers(self) -> ApiResult[List[Server]]:
        pass

    @abstractmethod
    def list_users(self, server_id: str) -> ApiResult[List[ServerUser]]:
        pass

    @abstractmethod
    def lock_user(self, server_id: str, username: str) -> ApiResult[Any]:
        pass

    @abstractmethod
    def unlock_user(self, server_id: str, username: str) -> ApiResult[Any]:
        pass

    @abstractmethod
    def create_user(self, server_id: str, user: NewUser) -> ApiResult[Any]:
        pass

    def export_url(self) -> str:
        """URL of the user export download.

        The export returns a file, so it is opened directly rather than
        fetched through the result envelope.
        """
        return f"{self.base_url.rstrip('/')}/export"


class GatewayError(Exception):
    """Raised inside a gateway when a call cannot produce usable data.

    Never escapes a public gateway method; it is converted to a failed
    ApiResult at that boundary.
    """

    def __init__(self, path: str, message: str, cause: Optional[Exception] = None):
        self.path = path
        self.cause = cause
        super().__init__(message)
