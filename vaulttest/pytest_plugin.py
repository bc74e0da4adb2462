"""Session fixtures for suites that talk to a real vault.

Enable from a conftest.py with:

    pytest_plugins = ['vaulttest.pytest_plugin']
"""
import pytest

from .errors import BinaryNotFoundError
from .ports import free_address
from .server_manager import VaultServer


def _started(server: VaultServer, start) -> VaultServer:
    try:
        start()
    except BinaryNotFoundError as e:
        pytest.skip(str(e))
    server.wait_ready()
    return server


@pytest.fixture(scope='session')
def vault_dev_server():
    """Unsealed dev server with its root token parsed"""
    server = VaultServer(free_address())
    try:
        yield _started(server, server.start_dev)
    finally:
        server.shutdown()


@pytest.fixture(scope='session')
def vault_server():
    """Sealed server started from a minimal config"""
    server = VaultServer(free_address())
    try:
        yield _started(server, server.start)
    finally:
        server.shutdown()


@pytest.fixture
def vault_client(vault_dev_server):
    return vault_dev_server.client()
