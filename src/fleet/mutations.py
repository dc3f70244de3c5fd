"""Lock/unlock and account creation against individual servers.

Successful lock/unlock calls patch the fleet snapshot immediately instead of
reloading it; the backend's acknowledgment is taken as proof of the new
state.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Optional

from ..data.models import ApiResult, EnrichedUser, NewUser, UserKey, UserStatus
from ..gateway.base import BackendGateway
from .state import FleetState


SUPPRESSED_ERROR = "Action already in progress for this user"


def _log(msg: str) -> None:
    print(msg, flush=True)


class MutationCoordinator:
    """Dispatches account mutations and keeps the snapshot in step.

    At most one action per (server_id, username) is in flight at a time;
    actions on different keys run independently.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        state: FleetState,
        notify: Optional[Callable[[str], None]] = None,
    ):
        self.gateway = gateway
        self.state = state
        self.notify = notify
        self._pending: set = set()
        self._pending_lock = threading.Lock()

    def toggle_lock(self, user: EnrichedUser) -> ApiResult[Any]:
        """Lock an active user or unlock a locked one.

        The current status comes from the snapshot record for the key, or
        from `user` when the key is not in the snapshot.
        """
        key = user.key
        if not self._claim(key):
            _log(f"[mutations] Ignoring toggle for {key[0]}/{key[1]}: already pending")
            return ApiResult.fail(SUPPRESSED_ERROR)

        try:
            current = self.state.find(key) or user
            was_locked = current.status is UserStatus.LOCKED
            action = self.gateway.unlock_user if was_locked else self.gateway.lock_user
            result = action(user.server_id, user.username)

            if result.success:
                target = current.status.inverse
                self.state.patch_status(key, target)
                _log(f"[mutations] {user.server_name}/{user.username} is now {target.value}")
            else:
                self._report(result.error)
            return result
        finally:
            self._release(key)

    def create_user(self, server_id: str, user: NewUser) -> ApiResult[Any]:
        """Create an account. The snapshot only shows it after the next reload."""
        result = self.gateway.create_user(server_id, user)
        if result.success:
            _log(f"[mutations] Created {user.username} on {server_id}")
        else:
            self._report(result.error)
        return result

    def is_pending(self, key: UserKey) -> bool:
        with self._pending_lock:
            return key in self._pending

    def pending(self) -> List[UserKey]:
        with self._pending_lock:
            return sorted(self._pending)

    def _claim(self, key: UserKey) -> bool:
        with self._pending_lock:
            if key in self._pending:
                return False
            self._pending.add(key)
            return True

    def _release(self, key: UserKey) -> None:
        with self._pending_lock:
            self._pending.discard(key)

    def _report(self, error: Optional[str]) -> None:
        message = f"Action failed: {error}"
        _log(f"[mutations] {message}")
        if self.notify is not None:
            self.notify(message)
