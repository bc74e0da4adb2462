import os
import time
from pathlib import Path
from typing import Callable

import pytest

from vaulttest import VaultServer, free_address

pytest_plugins = ['vaulttest.pytest_plugin']

DEV_OUTPUT_SCRIPT = """#!/bin/sh
echo "$@" > "$HOME/vault-args"
printf 'hvs.written-by-server' > "$HOME/.vault-token"
echo "==> Vault server configuration:"
echo ""
echo "             Api Address: http://$5"
echo "The unseal key and root token are displayed below in case you want to"
echo "seal/unseal the Vault or re-authenticate."
echo ""
echo "Unseal Key: fake-unseal-key="
echo "Root Token: hvs.fake-root-token"
echo ""
echo "Development mode should NOT be used in production installations!"
exec sleep 30
"""

SERVER_SCRIPT = """#!/bin/sh
echo "$@" > "$HOME/vault-args"
cp "${2#-config=}" "$HOME/vault-config.hcl"
exec sleep 30
"""


def wait_for_file(path: Path, timeout: float = 5.0) -> bool:
    """Poll until path exists"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists():
            return True
        time.sleep(0.05)
    return path.exists()


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """Isolated home directory so ~/.vault-token is ours to play with"""
    home_dir = tmp_path / 'home'
    home_dir.mkdir()
    monkeypatch.setenv('HOME', str(home_dir))
    return home_dir


@pytest.fixture
def fake_vault(tmp_path: Path, monkeypatch) -> Callable[[str], Path]:
    """Put a shell script named vault at the front of PATH"""
    bin_dir = tmp_path / 'bin'
    bin_dir.mkdir()
    monkeypatch.setenv('PATH', f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def install(script: str) -> Path:
        path = bin_dir / 'vault'
        path.write_text(script)
        path.chmod(0o755)
        return path

    return install


@pytest.fixture
def servers():
    """Tracks servers created by a test and shuts them all down afterwards"""
    created = []

    def make(address: str = None, **kwargs) -> VaultServer:
        server = VaultServer(address if address is not None else free_address(), **kwargs)
        created.append(server)
        return server

    yield make
    for server in created:
        server.shutdown()


@pytest.fixture
def dev_server(home, fake_vault, servers) -> VaultServer:
    fake_vault(DEV_OUTPUT_SCRIPT)
    server = servers()
    server.start_dev()
    return server
