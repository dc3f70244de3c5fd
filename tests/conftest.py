"""Pytest configuration and shared fixtures."""

import threading
from typing import Any, Dict, List, Optional

import pytest

from src.data.models import ApiResult, NewUser, Server, ServerUser, UserStatus
from src.gateway.base import BackendGateway


class FakeGateway(BackendGateway):
    """In-memory backend.

    `servers` is the directory, `users` maps server id to its accounts.
    Server ids listed in `failing` return a failed result, ids in `raising`
    raise, and `gates` holds events a lock/unlock call waits on before
    answering.
    """

    def __init__(self, servers: List[Server], users: Dict[str, List[ServerUser]]):
        self.servers = list(servers)
        self.users = {k: list(v) for k, v in users.items()}
        self.directory_error: Optional[str] = None
        self.failing: Dict[str, str] = {}
        self.raising: Dict[str, Exception] = {}
        self.mutation_error: Optional[str] = None
        self.gates: Dict[tuple, threading.Event] = {}
        self.calls: List[tuple] = []
        self._calls_lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return "http://backend.test"

    def _record(self, *call) -> None:
        with self._calls_lock:
            self.calls.append(call)

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def list_servers(self) -> ApiResult[List[Server]]:
        self._record("list_servers")
        if self.directory_error:
            return ApiResult.fail(self.directory_error)
        return ApiResult.ok(list(self.servers))

    def list_users(self, server_id: str) -> ApiResult[List[ServerUser]]:
        self._record("list_users", server_id)
        if server_id in self.raising:
            raise self.raising[server_id]
        if server_id in self.failing:
            return ApiResult.fail(self.failing[server_id])
        return ApiResult.ok(list(self.users.get(server_id, [])))

    def _set_status(self, server_id: str, username: str, status: UserStatus) -> ApiResult[Any]:
        gate = self.gates.get((server_id, username))
        if gate is not None:
            gate.wait(timeout=5)
        if self.mutation_error:
            return ApiResult.fail(self.mutation_error)
        accounts = self.users.get(server_id, [])
        for i, user in enumerate(accounts):
            if user.username == username:
                accounts[i] = ServerUser(user.username, user.uid, user.gid, status)
                return ApiResult.ok(accounts[i])
        return ApiResult.fail(f"User {username} not found")

    def lock_user(self, server_id: str, username: str) -> ApiResult[Any]:
        self._record("lock_user", server_id, username)
        return self._set_status(server_id, username, UserStatus.LOCKED)

    def unlock_user(self, server_id: str, username: str) -> ApiResult[Any]:
        self._record("unlock_user", server_id, username)
        return self._set_status(server_id, username, UserStatus.ACTIVE)

    def create_user(self, server_id: str, user: NewUser) -> ApiResult[Any]:
        self._record("create_user", server_id, user.username)
        if self.mutation_error:
            return ApiResult.fail(self.mutation_error)
        created = ServerUser(user.username, 2000, 2000, UserStatus.ACTIVE)
        self.users.setdefault(server_id, []).append(created)
        return ApiResult.ok(created)


@pytest.fixture
def fleet_servers():
    """Three servers: web1 and db1 answer, cache1 is configured per test."""
    return [
        Server(id="s1", name="web1"),
        Server(id="s2", name="db1"),
        Server(id="s3", name="cache1"),
    ]


@pytest.fixture
def fleet_users():
    return {
        "s1": [
            ServerUser("alice", 1001, 1001, UserStatus.ACTIVE),
            ServerUser("bob", 1002, 1002, UserStatus.LOCKED),
        ],
        "s2": [
            ServerUser("alice", 1001, 1001, UserStatus.ACTIVE),
        ],
        "s3": [
            ServerUser("carol", 1003, 1003, UserStatus.ACTIVE),
        ],
    }


@pytest.fixture
def gateway(fleet_servers, fleet_users):
    return FakeGateway(fleet_servers, fleet_users)


@pytest.fixture
def make_gateway():
    """Factory for a FakeGateway over custom servers and users."""
    return FakeGateway


@pytest.fixture
def sample_servers_json():
    return [
        {"id": "s1", "name": "web1"},
        {"id": "s2", "name": "db1"},
    ]


@pytest.fixture
def sample_users_json():
    return [
        {"username": "alice", "uid": 1001, "gid": 1001, "status": "active"},
        {"username": "bob", "uid": "1002", "gid": "1002", "status": "locked"},
    ]
