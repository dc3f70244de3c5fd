"""HTTP client for the account management backend.

Talks to the backend's REST API with a pooled requests session and turns
every outcome into an ApiResult.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Union
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import urllib3

from ..data.models import ApiResult, NewUser, Server, ServerUser, parse_servers, parse_users
from .base import BackendGateway, GatewayError


DEFAULT_BASE_URL = "http://localhost:3000"


def _log(msg: str) -> None:
    print(msg, flush=True)


class HttpBackendClient(BackendGateway):
    """Backend gateway over HTTP.

    Transport failures, non-2xx statuses and payloads that do not match the
    expected shape all come back as ``ApiResult(success=False, error=...)``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        retries: int = 0,
        verify: Union[bool, str] = True,
    ):
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(0, retries)
        self._verify = verify
        self._session: Optional[requests.Session] = None

        if self._verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def base_url(self) -> str:
        return self._base_url

    # --- Operations ---

    def list_servers(self) -> ApiResult[List[Server]]:
        return self._call("GET", "/servers", parse=parse_servers)

    def list_users(self, server_id: str) -> ApiResult[List[ServerUser]]:
        path = f"/servers/{_segment(server_id)}/users"
        return self._call("GET", path, parse=parse_users)

    def lock_user(self, server_id: str, username: str) -> ApiResult[Any]:
        path = f"/servers/{_segment(server_id)}/users/{_segment(username)}/lock"
        return self._call("POST", path, parse=_ack)

    def unlock_user(self, server_id: str, username: str) -> ApiResult[Any]:
        path = f"/servers/{_segment(server_id)}/users/{_segment(username)}/unlock"
        return self._call("POST", path, parse=_ack)

    def create_user(self, server_id: str, user: NewUser) -> ApiResult[Any]:
        path = f"/servers/{_segment(server_id)}/users"
        return self._call("POST", path, body=user.to_payload(), parse=_parse_created_user)

    # --- Session ---

    def _get_session(self) -> requests.Session:
        """Get or create a requests session with retry configuration.

        Retries apply to idempotent GETs only; mutations are sent once.
        """
        if self._session is None:
            session = requests.Session()
            retry = Retry(
                total=self.retries,
                connect=self.retries,
                read=self.retries,
                backoff_factor=0.5,
                status_forcelist=(502, 503, 504),
                allowed_methods=("GET", "HEAD"),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(
                max_retries=retry,
                pool_connections=10,
                pool_maxsize=32,
            )
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.verify = self._verify
            session.headers.update({
                "User-Agent": "fleet-user-console/1.0",
                "Accept": "application/json",
            })
            self._session = session
        return self._session

    def close(self) -> None:
        """Close the session and release pooled connections."""
        if self._session is not None:
            self._session.close()
            self._session = None

    # --- Request plumbing ---

    def _call(
        self,
        method: str,
        path: str,
        *,
        body: Optional[dict] = None,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> ApiResult[Any]:
        try:
            payload = self._request(method, path, body)
            if parse is None:
                return ApiResult.ok(payload)
            try:
                return ApiResult.ok(parse(payload))
            except ValueError as e:
                raise GatewayError(path, f"Malformed response from {path}: {e}", e)
        except GatewayError as e:
            _log(f"[gateway] {method} {path} failed: {e}")
            return ApiResult.fail(str(e))

    def _request(self, method: str, path: str, body: Optional[dict]) -> Any:
        """Issue one request and return its unwrapped JSON payload.

        Raises:
            GatewayError: On transport failure, error status or bad JSON.
        """
        url = f"{self._base_url}{path}"
        try:
            # 0 disables the timeout
            resp = self._get_session().request(method, url, json=body, timeout=self.timeout or None)
        except requests.exceptions.Timeout as e:
            raise GatewayError(path, f"Could not reach backend at {self._base_url}: request timed out", e)
        except requests.exceptions.RequestException as e:
            raise GatewayError(path, f"Could not reach backend at {self._base_url}: {e}", e)

        payload = self._decode(resp, path)

        if not 200 <= resp.status_code < 300:
            detail = _error_detail(payload)
            if not detail:
                reason = resp.reason or ""
                detail = f"HTTP {resp.status_code} {reason}".strip()
            raise GatewayError(path, detail)

        return _unwrap_envelope(payload, path)

    def _decode(self, resp: requests.Response, path: str) -> Any:
        if not resp.content or not resp.content.strip():
            return None
        try:
            return resp.json()
        except ValueError as e:
            if not 200 <= resp.status_code < 300:
                # Error pages are often HTML; fall back to the status line.
                return None
            raise GatewayError(path, f"Malformed response from {path}: invalid JSON", e)


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _error_detail(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _unwrap_envelope(payload: Any, path: str) -> Any:
    """Unwrap ``{"success": ..., "data": ...}`` bodies from the backend."""
    if not isinstance(payload, dict) or "success" not in payload:
        return payload
    if payload.get("success") is True:
        return payload.get("data")
    raise GatewayError(path, _error_detail(payload) or f"Backend reported failure for {path}")


def _ack(payload: Any) -> Any:
    """Empty success bodies become an explicit empty acknowledgement."""
    return {} if payload is None else payload


def _parse_created_user(payload: Any) -> Any:
    if isinstance(payload, dict) and "username" in payload:
        return ServerUser.from_dict(payload)
    return payload
