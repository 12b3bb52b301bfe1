"""Daemon configuration for resmand."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from resmand._constants import (
    DEFAULT_PREPROCESSOR,
    OBJECT_PATH,
    PROFILE_PREPROCESSORS,
    SERVICE_NAME,
)
from resmand.exceptions import ResmandConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ResmandConfigError(f"{name} must be an integer, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ResmandConfig:
    """Daemon configuration.

    One configuration drives both daemon flavours; the differences between
    them (preprocessor location, bootstrap file, bus name) are plain fields.

    Parameters
    ----------
    preprocessor : str
        Preprocessor executable used when a call does not name one.
    bootstrap_file : str or None
        File loaded once at startup. ``None`` starts with an empty table.
    disable_preprocessing : bool
        Read files verbatim instead of running them through the
        preprocessor. Applies to the bootstrap load and to ``Load(path)`` /
        ``Merge(path)`` calls that do not pass an explicit flag.
    service_name : str
        Bus service name announced by the daemon.
    object_path : str
        Path prefix the operations are served under.
    socket_path : str or None
        Unix socket to listen on. Derived from ``$XDG_RUNTIME_DIR`` and the
        service name when unset.
    host : str or None
        Listen on TCP instead of a Unix socket when set.
    port : int
        TCP port (``0`` picks a free one).
    mqtt_host : str or None
        Mirror change events to this MQTT broker when set.
    mqtt_port : int
        MQTT broker port.
    mqtt_topic : str or None
        Topic for mirrored change events. Defaults to
        ``<service_name>/ResourcesChanged`` with dots replaced by slashes.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    log_level : str
        Logging threshold name.
    """

    preprocessor: str = DEFAULT_PREPROCESSOR
    bootstrap_file: str | None = None
    disable_preprocessing: bool = False
    service_name: str = SERVICE_NAME
    object_path: str = OBJECT_PATH
    socket_path: str | None = None
    host: str | None = None
    port: int = 0
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_topic: str | None = None
    mqtt_keepalive: int = 60
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.preprocessor.strip():
            raise ResmandConfigError("preprocessor must be non-empty")
        if not self.object_path.startswith("/"):
            raise ResmandConfigError(f"object_path must start with '/', got {self.object_path!r}")
        if not 0 <= self.port <= 65535:
            raise ResmandConfigError(f"port out of range: {self.port}")

    @property
    def resolved_socket_path(self) -> str:
        """Unix socket path the daemon listens on and clients connect to."""
        if self.socket_path:
            return self.socket_path
        runtime_dir = os.environ.get("XDG_RUNTIME_DIR") or f"/tmp/resmand-{os.getuid()}"
        return str(Path(runtime_dir) / "resmand" / f"{self.service_name}.sock")

    @property
    def resolved_mqtt_topic(self) -> str:
        if self.mqtt_topic:
            return self.mqtt_topic
        return f"{self.service_name.replace('.', '/')}/ResourcesChanged"

    @classmethod
    def for_profile(cls, profile: str, **overrides: Any) -> ResmandConfig:
        """Create configuration for a named daemon profile.

        ``"default"`` uses the system-profile preprocessor path, ``"legacy"``
        the classic ``/usr/bin/cpp``.
        """
        try:
            preprocessor = PROFILE_PREPROCESSORS[profile]
        except KeyError as exc:
            known = ", ".join(sorted(PROFILE_PREPROCESSORS))
            raise ResmandConfigError(f"unknown profile {profile!r} (known: {known})") from exc
        overrides.setdefault("preprocessor", preprocessor)
        return cls(**overrides)

    @classmethod
    def from_env(cls, **overrides: Any) -> ResmandConfig:
        """Create configuration from environment variables.

        Reads optional ``RESMAND_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ResmandConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "RESMAND_PREPROCESSOR": "preprocessor",
            "RESMAND_BOOTSTRAP_FILE": "bootstrap_file",
            "RESMAND_SERVICE_NAME": "service_name",
            "RESMAND_OBJECT_PATH": "object_path",
            "RESMAND_SOCKET": "socket_path",
            "RESMAND_HOST": "host",
            "RESMAND_MQTT_HOST": "mqtt_host",
            "RESMAND_MQTT_TOPIC": "mqtt_topic",
            "RESMAND_LOG_LEVEL": "log_level",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "RESMAND_PORT": "port",
            "RESMAND_MQTT_PORT": "mqtt_port",
            "RESMAND_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_int(env_key, val)

        if "disable_preprocessing" not in overrides:
            config_kwargs["disable_preprocessing"] = _env_bool(env.get("RESMAND_NOCPP"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
