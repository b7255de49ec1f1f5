from testharbor.containers.container import ContainerState, DockerContainer
from testharbor.containers.ports import Port, PortBinding, parse_port_specs, to_docker_ports
from testharbor.containers.provider import (
    DockerProvider,
    generic_container,
    get_default_provider,
    use_existing,
)
from testharbor.containers.request import (
    ContainerRequest,
    GenericContainerRequest,
    ProviderType,
    RegistryCredentials,
)

__all__ = [
    "ContainerRequest",
    "ContainerState",
    "DockerContainer",
    "DockerProvider",
    "GenericContainerRequest",
    "Port",
    "PortBinding",
    "ProviderType",
    "RegistryCredentials",
    "generic_container",
    "get_default_provider",
    "parse_port_specs",
    "to_docker_ports",
    "use_existing",
]
