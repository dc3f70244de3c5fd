"""Fleet-wide user aggregation.

Fans out one user-list request per server, waits for every outcome, and
publishes the successful ones as a single flattened snapshot.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from ..data.models import ApiResult, EnrichedUser, Server
from .directory import ServerDirectory
from .state import FleetState


def _log(msg: str) -> None:
    print(msg, flush=True)


class FleetUserAggregator:
    """Builds the fleet snapshot from every server's user list.

    A server whose fetch fails, raises or times out contributes no rows.
    That is never reported as an aggregate error; only a directory failure
    is.
    """

    def __init__(
        self,
        directory: ServerDirectory,
        state: Optional[FleetState] = None,
        max_workers: Optional[int] = None,
    ):
        self.directory = directory
        self.gateway = directory.gateway
        self.state = state or FleetState()
        # None: one worker per server
        self.max_workers = max(1, max_workers) if max_workers else None

    def load_all_users(self) -> ApiResult[List[EnrichedUser]]:
        """Reload the whole snapshot.

        Returns:
            The published rows, or the directory error if the server list
            could not be loaded.
        """
        generation = self.state.begin_reload()
        try:
            servers_res = self.directory.load_servers()
        except Exception as exc:
            self.state.fail_reload(generation, f"Failed to fetch servers: {exc}")
            raise
        if not servers_res.success:
            self.state.fail_reload(generation, servers_res.error)
            return ApiResult.fail(servers_res.error)

        servers = servers_res.data or []
        try:
            rows = self._gather(servers)
        except Exception:
            self.state.fail_reload(generation, "User aggregation failed")
            raise

        if self.state.publish(generation, rows):
            _log(f"[aggregator] Published {len(rows)} users from {len(servers)} servers")
        return ApiResult.ok(list(self.state.rows()))

    def load_server_users(self, server: Server) -> ApiResult[List[EnrichedUser]]:
        """Fetch one server's users without touching the snapshot."""
        result = self.gateway.list_users(server.id)
        if not result.success:
            return ApiResult.fail(result.error)
        return ApiResult.ok([EnrichedUser.from_server_user(u, server) for u in result.data or []])

    def _gather(self, servers: List[Server]) -> List[EnrichedUser]:
        """Fetch every server concurrently and concatenate in directory order."""
        if not servers:
            return []

        workers = len(servers)
        if self.max_workers is not None:
            workers = min(self.max_workers, workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fleet-fetch") as pool:
            futures = [pool.submit(self._fetch_server, server) for server in servers]
            contributions = [self._settle(server, future) for server, future in zip(servers, futures)]

        rows: List[EnrichedUser] = []
        for contribution in contributions:
            rows.extend(contribution)
        return rows

    def _fetch_server(self, server: Server) -> List[EnrichedUser]:
        result = self.gateway.list_users(server.id)
        if not result.success:
            _log(f"[aggregator] Skipping {server.name} ({server.id}): {result.error}")
            return []
        return _dedupe_usernames(server, result.data or [])

    def _settle(self, server: Server, future: Future) -> List[EnrichedUser]:
        try:
            return future.result()
        except Exception as exc:
            _log(f"[aggregator] Skipping {server.name} ({server.id}): {exc}")
            return []


def _dedupe_usernames(server: Server, users) -> List[EnrichedUser]:
    seen = set()
    rows = []
    for user in users:
        if user.username in seen:
            _log(f"[aggregator] {server.name} listed {user.username!r} twice; keeping the first")
            continue
        seen.add(user.username)
        rows.append(EnrichedUser.from_server_user(user, server))
    return rows
