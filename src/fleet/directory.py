"""Server directory loader.

The backend directory is the single source of truth for which servers exist.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from ..data.models import ApiResult, Server
from ..gateway.base import BackendGateway


def _log(msg: str) -> None:
    print(msg, flush=True)


class ServerDirectory:
    """Working copy of the server list.

    A failed load keeps the previously loaded list and records the error for
    display. Reloads happen only when asked for.
    """

    def __init__(self, gateway: BackendGateway):
        self.gateway = gateway
        self._servers: List[Server] = []
        self._error: Optional[str] = None
        self._loading = 0
        self._lock = threading.Lock()

    def load_servers(self) -> ApiResult[List[Server]]:
        with self._lock:
            self._loading += 1
            self._error = None
        try:
            result = self.gateway.list_servers()
            if not result.success:
                error = result.error or "Failed to fetch servers"
                _log(f"[directory] Failed to load servers: {error}")
                with self._lock:
                    self._error = error
                return ApiResult.fail(error)

            servers = _unique_servers(result.data or [])
            with self._lock:
                self._servers = servers
            _log(f"[directory] Loaded {len(servers)} servers")
            return ApiResult.ok(list(servers))
        finally:
            with self._lock:
                self._loading -= 1

    @property
    def servers(self) -> List[Server]:
        with self._lock:
            return list(self._servers)

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._loading > 0

    def get(self, server_id: str) -> Optional[Server]:
        with self._lock:
            for server in self._servers:
                if server.id == server_id:
                    return server
        return None

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "servers": [s.to_dict() for s in self._servers],
                "loading": self._loading > 0,
                "error": self._error,
            }


def _unique_servers(servers: List[Server]) -> List[Server]:
    seen = set()
    unique = []
    for server in servers:
        if server.id in seen:
            _log(f"[directory] Ignoring duplicate server id {server.id!r}")
            continue
        seen.add(server.id)
        unique.append(server)
    return unique
