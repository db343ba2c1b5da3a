"""Layered configuration: .vigil/config.toml -> VIGIL_* env vars -> defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib  # 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]


def _env_bool(value: str | bool) -> bool:
    if isinstance(value, bool):
        return value
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """SQLite store settings."""

    db_name: str = "vigil.db"
    seed_on_startup: bool = True


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """HTTP/WebSocket server settings."""

    host: str = "127.0.0.1"
    port: int = 5000


@dataclass(frozen=True, slots=True)
class GeneratorConfig:
    """Synthetic load generator settings."""

    enabled: bool = True
    interval: float = 10.0
    error_probability: float = 0.10
    alert_probability: float = 0.05


@dataclass(frozen=True, slots=True)
class BroadcastConfig:
    """Push channel fan-out settings."""

    send_timeout: float = 5.0


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Dashboard session settings."""

    base_url: str = "http://127.0.0.1:5000"
    reconnect_delay: float = 3.0
    poll_interval: float = 30.0


@dataclass(frozen=True, slots=True)
class VigilConfig:
    """Top-level configuration container."""

    project_path: Path = field(default_factory=Path.cwd)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    broadcast: BroadcastConfig = field(default_factory=BroadcastConfig)
    client: ClientConfig = field(default_factory=ClientConfig)

    @property
    def vigil_dir(self) -> Path:
        return self.project_path / ".vigil"

    @property
    def db_path(self) -> Path:
        return self.vigil_dir / self.store.db_name

    @classmethod
    def load(cls, project_path: Path | None = None) -> VigilConfig:
        """Load config with layering: TOML file -> env vars -> defaults."""
        project = Path(project_path) if project_path else Path.cwd()
        toml_path = project / ".vigil" / "config.toml"

        toml_data: dict = {}
        if toml_path.is_file():
            with open(toml_path, "rb") as f:
                toml_data = tomllib.load(f)

        store_data = toml_data.get("store", {})
        server_data = toml_data.get("server", {})
        gen_data = toml_data.get("generator", {})
        broadcast_data = toml_data.get("broadcast", {})
        client_data = toml_data.get("client", {})

        # Use literal defaults (slots=True prevents class-level attribute access)
        _store_defaults = StoreConfig()
        _server_defaults = ServerConfig()
        _gen_defaults = GeneratorConfig()
        _broadcast_defaults = BroadcastConfig()
        _client_defaults = ClientConfig()

        store = StoreConfig(
            db_name=os.environ.get(
                "VIGIL_DB_NAME",
                store_data.get("db_name", _store_defaults.db_name),
            ),
            seed_on_startup=_env_bool(
                os.environ.get(
                    "VIGIL_SEED_ON_STARTUP",
                    store_data.get("seed_on_startup", _store_defaults.seed_on_startup),
                )
            ),
        )

        server = ServerConfig(
            host=os.environ.get(
                "VIGIL_HOST", server_data.get("host", _server_defaults.host)
            ),
            port=int(
                os.environ.get(
                    "VIGIL_PORT", server_data.get("port", _server_defaults.port)
                )
            ),
        )

        generator = GeneratorConfig(
            enabled=_env_bool(
                os.environ.get(
                    "VIGIL_GENERATOR_ENABLED",
                    gen_data.get("enabled", _gen_defaults.enabled),
                )
            ),
            interval=float(
                os.environ.get(
                    "VIGIL_GENERATOR_INTERVAL",
                    gen_data.get("interval", _gen_defaults.interval),
                )
            ),
            error_probability=float(
                gen_data.get("error_probability", _gen_defaults.error_probability)
            ),
            alert_probability=float(
                gen_data.get("alert_probability", _gen_defaults.alert_probability)
            ),
        )

        broadcast = BroadcastConfig(
            send_timeout=float(
                os.environ.get(
                    "VIGIL_SEND_TIMEOUT",
                    broadcast_data.get("send_timeout", _broadcast_defaults.send_timeout),
                )
            ),
        )

        client = ClientConfig(
            base_url=os.environ.get(
                "VIGIL_BASE_URL",
                client_data.get("base_url", _client_defaults.base_url),
            ),
            reconnect_delay=float(
                client_data.get("reconnect_delay", _client_defaults.reconnect_delay)
            ),
            poll_interval=float(
                client_data.get("poll_interval", _client_defaults.poll_interval)
            ),
        )

        return cls(
            project_path=project,
            store=store,
            server=server,
            generator=generator,
            broadcast=broadcast,
            client=client,
        )
