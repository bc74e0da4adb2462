"""Throwaway HashiCorp Vault servers for integration tests.

    server = VaultServer(free_address())
    server.start_dev()
    client = server.client()
    ...
    server.shutdown()
"""

from .api_client import build_client
from .errors import (
    BinaryNotFoundError,
    ClientConfigError,
    CredentialsNotFoundError,
    EnvironmentPreconditionError,
    HomeDirectoryError,
    LaunchError,
    ServerStateError,
    StartupError,
    StartupTimeoutError,
    VaultTestError,
)
from .ports import free_address
from .server_manager import ServerState, VaultServer

__all__ = [
    'VaultServer',
    'ServerState',
    'build_client',
    'free_address',
    'VaultTestError',
    'EnvironmentPreconditionError',
    'HomeDirectoryError',
    'BinaryNotFoundError',
    'ClientConfigError',
    'LaunchError',
    'StartupError',
    'CredentialsNotFoundError',
    'StartupTimeoutError',
    'ServerStateError',
]
