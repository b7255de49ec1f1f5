"""testharbor - disposable Docker containers for test runs, cleaned up even when the run crashes."""

__version__ = "0.1.0"

from testharbor.concurrency.cancellation import CancellationToken
from testharbor.containers import (
    ContainerRequest,
    DockerContainer,
    DockerProvider,
    GenericContainerRequest,
    ProviderType,
    RegistryCredentials,
    generic_container,
    use_existing,
)
from testharbor.errors import (
    CollaboratorError,
    ConfigurationError,
    ContainerStartError,
    NotFoundError,
    RegistrationFailedError,
    StartupTimeoutError,
    StrategyError,
    SweepError,
    TestHarborError,
    TransientCollaboratorError,
    WaitCancelledError,
)
from testharbor.session import labels_for, new_session_id

__all__ = [
    "__version__",
    "CancellationToken",
    "CollaboratorError",
    "ConfigurationError",
    "ContainerRequest",
    "ContainerStartError",
    "DockerContainer",
    "DockerProvider",
    "GenericContainerRequest",
    "NotFoundError",
    "ProviderType",
    "RegistrationFailedError",
    "RegistryCredentials",
    "StartupTimeoutError",
    "StrategyError",
    "SweepError",
    "TestHarborError",
    "TransientCollaboratorError",
    "WaitCancelledError",
    "generic_container",
    "labels_for",
    "new_session_id",
    "use_existing",
]
