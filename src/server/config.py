"""Configuration management for the fleet user console.

Supports YAML-based configuration for the backend connection, the fan-out
pool and the console API listener.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..gateway.client import DEFAULT_BASE_URL


@dataclass
class BackendConfig:
    """Connection settings for the account management backend."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 10  # seconds
    retries: int = 0  # GET retries; mutations are never retried
    verify_tls: bool = True
    ca_bundle: Optional[str] = None

    @property
    def verify(self) -> Union[bool, str]:
        if not self.verify_tls:
            return False
        return self.ca_bundle or True


@dataclass
class FleetConfig:
    """Fan-out settings for fleet-wide user loading."""

    max_workers: Optional[int] = None  # cap on concurrent fetches; None = one per server


@dataclass
class ServerConfig:
    """Console API listener configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    """Main configuration container."""

    deployment_name: str = "Fleet User Console"

    backend: BackendConfig = field(default_factory=BackendConfig)
    fleet: FleetConfig = field(default_factory=FleetConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        deployment = data.get("deployment", {})

        backend_data = data.get("backend", {})
        backend = BackendConfig(
            base_url=backend_data.get("base_url", DEFAULT_BASE_URL),
            timeout=backend_data.get("timeout", 10),
            retries=backend_data.get("retries", 0),
            verify_tls=backend_data.get("verify_tls", True),
            ca_bundle=backend_data.get("ca_bundle"),
        )

        fleet_data = data.get("fleet", {})
        fleet = FleetConfig(
            max_workers=fleet_data.get("max_workers"),
        )

        server_data = data.get("server", {})
        server = ServerConfig(
            host=server_data.get("host", "127.0.0.1"),
            port=server_data.get("port", 8080),
        )

        return cls(
            deployment_name=deployment.get("name", "Fleet User Console"),
            backend=backend,
            fleet=fleet,
            server=server,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from the first candidate file that exists.

        Candidates, in order:
        1. Provided path
        2. FLEET_CONSOLE_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.fleet_console/config.yaml

        A candidate that does not exist is skipped, including an explicit
        path. If none exists, the default config is returned.
        """
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("FLEET_CONSOLE_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".fleet_console" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "deployment": {
                "name": self.deployment_name,
            },
            "backend": {
                "base_url": self.backend.base_url,
                "timeout": self.backend.timeout,
                "retries": self.backend.retries,
                "verify_tls": self.backend.verify_tls,
            },
            "fleet": {
                "max_workers": self.fleet.max_workers,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
            },
        }
