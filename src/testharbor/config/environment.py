"""
Environment Configuration Module

All tunables of testharbor are resolved through the :class:`Environment`
class, in this order:

- Environment variables (including ones loaded from a local ``.env`` file)
- The optional settings file (``~/.config/testharbor/settings.yaml``)
- ``DEFAULT_ENV``

The Docker connection itself is configured the way the docker SDK always is
(``DOCKER_HOST``, ``DOCKER_TLS_VERIFY``, ``DOCKER_CERT_PATH``).
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from testharbor.config.settings import get_value, load_settings

DEFAULT_ENV: Dict[str, Any] = {
    "TESTHARBOR_HOST": None,
    "TESTHARBOR_REAPER_IMAGE": "testcontainers/ryuk:0.5.1",
    "TESTHARBOR_REAPER_CONNECT_TIMEOUT": "60",
    "TESTHARBOR_DOCKER_SOCKET": None,
    "TESTHARBOR_PULL_MAX_RETRIES": "5",
    "TESTHARBOR_LOG_LEVEL": "INFO",
}

DEFAULT_DOCKER_SOCKET = "/var/run/docker.sock"


def load_dotenv_files() -> None:
    """Load a ``.env`` file from the working directory without overriding."""
    from dotenv import load_dotenv

    env_file = Path.cwd() / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)


class Environment(object):
    """
    Central access point for testharbor configuration values.

    Settings are loaded lazily on first access and cached on the class;
    call :meth:`reset` to force a reload (tests do this after patching the
    environment).
    """

    settings: Optional[Dict[str, Any]] = None

    @classmethod
    def load_settings(cls) -> None:
        load_dotenv_files()
        cls.settings = load_settings()

    @classmethod
    def reset(cls) -> None:
        cls.settings = None

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        if cls.settings is None:
            cls.load_settings()
        assert cls.settings is not None
        return get_value(key, cls.settings, DEFAULT_ENV, default)

    @classmethod
    def get_host_override(cls) -> Optional[str]:
        """
        Host under which published container ports are reachable, when the
        Docker daemon address cannot be used directly.
        """
        return cls.get("TESTHARBOR_HOST") or None

    @classmethod
    def get_reaper_image(cls) -> str:
        return str(cls.get("TESTHARBOR_REAPER_IMAGE"))

    @classmethod
    def get_reaper_connect_timeout(cls) -> float:
        return float(cls.get("TESTHARBOR_REAPER_CONNECT_TIMEOUT"))

    @classmethod
    def get_docker_socket(cls) -> str:
        """
        Path of the Docker socket mounted into the reaper sidecar.

        Falls back to the path in a ``unix://`` ``DOCKER_HOST``, then to the
        standard socket location.
        """
        socket_path = cls.get("TESTHARBOR_DOCKER_SOCKET")
        if socket_path:
            return str(socket_path)
        docker_host = os.environ.get("DOCKER_HOST", "")
        if docker_host.startswith("unix://"):
            return docker_host[len("unix://") :]
        return DEFAULT_DOCKER_SOCKET

    @classmethod
    def get_pull_max_retries(cls) -> int:
        return int(cls.get("TESTHARBOR_PULL_MAX_RETRIES"))

    @classmethod
    def get_log_level(cls) -> str:
        return str(cls.get("TESTHARBOR_LOG_LEVEL")).upper()
