"""
Container request models.

A :class:`ContainerRequest` describes one container; a
:class:`GenericContainerRequest` wraps it with the choices that belong to
the caller rather than the container (auto-start, which provider).
"""

from __future__ import annotations

import shlex
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from testharbor.containers.ports import PortBinding, parse_port_specs
from testharbor.wait.strategy import WaitStrategy

if TYPE_CHECKING:
    from testharbor.containers.provider import DockerProvider


class RegistryCredentials(BaseModel):
    """Credentials for pulling images from a private registry."""

    username: str
    password: str
    registry: Optional[str] = Field(None, description="Registry host, e.g. ghcr.io")

    def auth_config(self) -> Dict[str, str]:
        """Credentials in the form docker-py's ``auth_config`` expects."""
        config = {"username": self.username, "password": self.password}
        if self.registry:
            config["serveraddress"] = self.registry
        return config


class ContainerRequest(BaseModel):
    """Everything needed to create one container."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    image: str = Field(..., description="Image reference, e.g. nginx:alpine")
    exposed_ports: List[str] = Field(default_factory=list, description="Port specs, e.g. 80/tcp or 8080:80")
    env: Dict[str, str] = Field(default_factory=dict)
    bind_mounts: Dict[str, str] = Field(default_factory=dict, description="Host source path -> container target path")
    labels: Dict[str, str] = Field(default_factory=dict)
    name: Optional[str] = None
    cmd: Optional[List[str]] = None
    entrypoint: Optional[List[str]] = None
    wait_for: Optional[WaitStrategy] = None
    skip_reaper: bool = Field(False, description="Opt out of guarded cleanup")
    dont_remove: bool = Field(False, description="Keep the container after it stops")
    privileged: bool = False
    registry_credentials: Optional[RegistryCredentials] = None

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("image cannot be empty")
        return v.strip()

    @field_validator("cmd", "entrypoint", mode="before")
    @classmethod
    def split_command(cls, v):
        if isinstance(v, str):
            return shlex.split(v)
        return v

    def port_bindings(self) -> List[PortBinding]:
        """
        Parse ``exposed_ports``.

        Raises:
            ConfigurationError: If a port specification is malformed.
        """
        return parse_port_specs(self.exposed_ports)


class ProviderType(str, Enum):
    """Container runtimes testharbor can drive."""

    DOCKER = "docker"

    def get_provider(self) -> "DockerProvider":
        """Return the process-wide provider for this runtime."""
        from testharbor.containers.provider import get_default_provider

        return get_default_provider(self)


class GenericContainerRequest(BaseModel):
    """A container request plus the caller's lifecycle choices."""

    model_config = ConfigDict(frozen=True)

    request: ContainerRequest
    started: bool = Field(False, description="Start the container (and wait for readiness) before returning")
    provider_type: ProviderType = ProviderType.DOCKER
