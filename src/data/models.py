"""Data models for fleet user management.

This module defines the records the console works with:

1. DIRECTORY
   - Server: one managed host, identified by a stable id

2. ACCOUNTS
   - ServerUser: a local OS account as reported by one server
   - EnrichedUser: a ServerUser tagged with its origin server, so identical
     usernames on different servers stay distinguishable
   - NewUser: fields sent to the backend when creating an account

3. RESULT ENVELOPE
   - ApiResult: uniform success/data/error wrapper returned by every
     remote call instead of raising

The natural key for every account operation is (server_id, username).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")

UserKey = Tuple[str, str]


class UserStatus(str, Enum):
    """Account state on a server."""

    ACTIVE = "active"
    LOCKED = "locked"

    @property
    def inverse(self) -> "UserStatus":
        return UserStatus.ACTIVE if self is UserStatus.LOCKED else UserStatus.LOCKED


# =============================================================================
# Result Envelope
# =============================================================================


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Outcome of a remote call.

    `data` is set only when `success` is True, `error` only when it is False.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "ApiResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ApiResult[T]":
        return cls(success=False, error=error or "Unknown error")

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": _jsonable(self.data)}
        return {"success": False, "error": self.error}


def _jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# =============================================================================
# Directory
# =============================================================================


@dataclass(frozen=True)
class Server:
    """A managed server as listed by the backend directory."""

    id: str
    name: str

    @classmethod
    def from_dict(cls, data: Any) -> "Server":
        if not isinstance(data, dict):
            raise ValueError(f"server entry must be an object, got {type(data).__name__}")
        server_id = data.get("id")
        if server_id is None or server_id == "":
            raise ValueError("server entry is missing 'id'")
        name = data.get("name")
        return cls(id=str(server_id), name=str(name) if name is not None else str(server_id))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


# =============================================================================
# Accounts
# =============================================================================


def _coerce_int(value: Any, field_name: str) -> int:
    """Accept ints and numeric strings; reject everything else."""
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError(f"'{field_name}' must be an integer, got {value!r}")


def _parse_status(value: Any) -> UserStatus:
    try:
        return UserStatus(str(value).lower())
    except ValueError:
        raise ValueError(f"unknown user status {value!r}") from None


@dataclass(frozen=True)
class ServerUser:
    """A local account on one server."""

    username: str
    uid: int
    gid: int
    status: UserStatus = UserStatus.ACTIVE

    @property
    def is_locked(self) -> bool:
        return self.status is UserStatus.LOCKED

    @classmethod
    def from_dict(cls, data: Any) -> "ServerUser":
        if not isinstance(data, dict):
            raise ValueError(f"user entry must be an object, got {type(data).__name__}")
        username = data.get("username")
        if not isinstance(username, str) or not username:
            raise ValueError("user entry is missing 'username'")
        return cls(
            username=username,
            uid=_coerce_int(data.get("uid"), "uid"),
            gid=_coerce_int(data.get("gid"), "gid"),
            status=_parse_status(data.get("status", UserStatus.ACTIVE.value)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "uid": self.uid,
            "gid": self.gid,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class EnrichedUser(ServerUser):
    """A ServerUser tagged with the server it came from."""

    server_id: str = ""
    server_name: str = ""

    @property
    def key(self) -> UserKey:
        return (self.server_id, self.username)

    @classmethod
    def from_server_user(cls, user: ServerUser, server: Server) -> "EnrichedUser":
        return cls(
            username=user.username,
            uid=user.uid,
            gid=user.gid,
            status=user.status,
            server_id=server.id,
            server_name=server.name,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["serverId"] = self.server_id
        data["serverName"] = self.server_name
        return data


@dataclass
class NewUser:
    """Account fields sent when creating a user. Unset fields are omitted."""

    username: str
    password: Optional[str] = None
    full_name: Optional[str] = None
    shell: Optional[str] = None
    groups: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewUser":
        groups = data.get("groups") or []
        if isinstance(groups, str):
            groups = [g.strip() for g in groups.split(",") if g.strip()]
        return cls(
            username=str(data.get("username", "")),
            password=data.get("password"),
            full_name=data.get("full_name", data.get("fullName")),
            shell=data.get("shell"),
            groups=list(groups),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"username": self.username}
        if self.password:
            payload["password"] = self.password
        if self.full_name:
            payload["fullName"] = self.full_name
        if self.shell:
            payload["shell"] = self.shell
        if self.groups:
            payload["groups"] = list(self.groups)
        return payload


def parse_servers(payload: Any) -> List[Server]:
    """Parse a directory listing. Raises ValueError on a malformed payload."""
    if not isinstance(payload, list):
        raise ValueError(f"expected a list of servers, got {type(payload).__name__}")
    return [Server.from_dict(item) for item in payload]


def parse_users(payload: Any) -> List[ServerUser]:
    """Parse one server's user listing. Raises ValueError on a malformed payload."""
    if not isinstance(payload, list):
        raise ValueError(f"expected a list of users, got {type(payload).__name__}")
    return [ServerUser.from_dict(item) for item in payload]
