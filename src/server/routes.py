"""HTTP request handlers for the console API.

Renders core state as JSON and forwards operator intents (refresh, search,
toggle-lock, create-user, export) to the fleet core.
"""

from __future__ import annotations

import json
import re
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler
from typing import Any, Dict, Optional, TYPE_CHECKING
from urllib.parse import parse_qs, unquote, urlparse

from ..data.models import NewUser
from ..fleet.mutations import SUPPRESSED_ERROR

if TYPE_CHECKING:
    from .main import Console


SERVER_USERS_RE = re.compile(r"^/api/servers/([^/]+)/users$")
TOGGLE_LOCK_RE = re.compile(r"^/api/servers/([^/]+)/users/([^/]+)/toggle-lock$")


class ConsoleRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the console.

    Serves:
    - Fleet snapshot and server directory views
    - Refresh, toggle-lock and create-user actions
    - Export redirect and settings
    """

    # These will be set by the server
    console: Optional["Console"] = None
    config: Optional[Dict] = None

    def do_GET(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"

        if path == "/api/servers":
            return self._handle_servers()
        if path == "/api/users":
            return self._handle_users(parse_qs(parsed.query))
        if path == "/api/export":
            return self._handle_export()
        if path == "/api/config":
            return self._handle_config()
        match = SERVER_USERS_RE.match(path)
        if match:
            return self._handle_server_users(unquote(match.group(1)))

        self._send_error_json(HTTPStatus.NOT_FOUND, "Unknown endpoint")

    def do_POST(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"

        if path == "/api/servers/refresh":
            return self._handle_servers_refresh()
        if path == "/api/users/refresh":
            return self._handle_users_refresh()
        match = TOGGLE_LOCK_RE.match(path)
        if match:
            return self._handle_toggle_lock(unquote(match.group(1)), unquote(match.group(2)))
        match = SERVER_USERS_RE.match(path)
        if match:
            return self._handle_create_user(unquote(match.group(1)))

        self._send_error_json(HTTPStatus.NOT_FOUND, "Unknown endpoint")

    def do_OPTIONS(self):
        self.send_response(HTTPStatus.NO_CONTENT)
        self._send_cors_headers()
        self.send_header("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()

    # --- API Handlers ---

    def _handle_servers(self):
        console = self._require_console()
        if console:
            self._send_json(console.directory.get_status())

    def _handle_servers_refresh(self):
        console = self._require_console()
        if not console:
            return
        result = console.directory.load_servers()
        status = HTTPStatus.OK if result.success else HTTPStatus.SERVICE_UNAVAILABLE
        self._send_json(result.to_dict(), status_code=status)

    def _handle_users(self, query: Dict[str, Any]):
        console = self._require_console()
        if not console:
            return
        term = (query.get("search") or [""])[0]
        body, users = console.state.view(term)
        body["users"] = [u.to_dict() for u in users]
        body["search"] = term
        body["pending"] = [
            {"serverId": server_id, "username": username}
            for server_id, username in console.coordinator.pending()
        ]
        self._send_json(body)

    def _handle_users_refresh(self):
        console = self._require_console()
        if not console:
            return
        result = console.aggregator.load_all_users()
        status = HTTPStatus.OK if result.success else HTTPStatus.SERVICE_UNAVAILABLE
        self._send_json(result.to_dict(), status_code=status)

    def _handle_server_users(self, server_id: str):
        console = self._require_console()
        if not console:
            return
        server = console.directory.get(server_id)
        if server is None:
            self._send_error_json(HTTPStatus.NOT_FOUND, f"Server '{server_id}' not found.")
            return
        result = console.aggregator.load_server_users(server)
        status = HTTPStatus.OK if result.success else HTTPStatus.BAD_GATEWAY
        self._send_json(result.to_dict(), status_code=status)

    def _handle_toggle_lock(self, server_id: str, username: str):
        console = self._require_console()
        if not console:
            return
        user = console.state.find((server_id, username))
        if user is None:
            self._send_error_json(HTTPStatus.NOT_FOUND, f"User '{username}' not found on '{server_id}'.")
            return
        result = console.coordinator.toggle_lock(user)
        if result.success:
            updated = console.state.find(user.key) or user
            self._send_json({"success": True, "data": updated.to_dict()})
        elif result.error == SUPPRESSED_ERROR:
            self._send_json(result.to_dict(), status_code=HTTPStatus.CONFLICT)
        else:
            self._send_json(result.to_dict(), status_code=HTTPStatus.BAD_GATEWAY)

    def _handle_create_user(self, server_id: str):
        console = self._require_console()
        if not console:
            return
        if console.directory.get(server_id) is None:
            self._send_error_json(HTTPStatus.NOT_FOUND, f"Server '{server_id}' not found.")
            return
        body = self._read_json_body()
        if not isinstance(body, dict):
            self._send_error_json(HTTPStatus.BAD_REQUEST, "Request body must be a JSON object.")
            return
        new_user = NewUser.from_dict(body)
        if not new_user.username:
            self._send_error_json(HTTPStatus.BAD_REQUEST, "'username' is required.")
            return
        result = console.coordinator.create_user(server_id, new_user)
        status = HTTPStatus.CREATED if result.success else HTTPStatus.BAD_GATEWAY
        self._send_json(result.to_dict(), status_code=status)

    def _handle_export(self):
        console = self._require_console()
        if not console:
            return
        self.send_response(HTTPStatus.FOUND)
        self.send_header("Location", console.gateway.export_url())
        self.send_header("Content-Length", "0")
        self._send_cors_headers()
        self.end_headers()

    def _handle_config(self):
        """Return current settings for the frontend."""
        config_data = self.config or {}
        self._send_json({
            "deployment": config_data.get("deployment", {}),
            "backend": {
                "base_url": config_data.get("backend", {}).get("base_url"),
            },
        })

    # --- Helper Methods ---

    def _require_console(self) -> Optional["Console"]:
        if self.console is None:
            self._send_error_json(HTTPStatus.SERVICE_UNAVAILABLE, "Server not initialized.")
        return self.console

    def _read_json_body(self) -> Any:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            return None
        if length <= 0:
            return None
        raw = self.rfile.read(length)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None

    def _send_error_json(self, status_code: HTTPStatus, message: str):
        self._send_json({"success": False, "error": message}, status_code=status_code)

    def _send_json(self, data: Any, *, status_code: HTTPStatus = HTTPStatus.OK):
        body = json.dumps(data).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store, max-age=0")
        self._send_cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def _send_cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")

    def log_message(self, format, *args):
        print(f"[console] {self.address_string()} {format % args}", flush=True)
