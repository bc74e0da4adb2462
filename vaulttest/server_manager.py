import enum
import logging
import os
import time
from pathlib import Path
from typing import Iterable, Optional

import hvac
import requests

from .api_client import build_client
from .errors import (
    CredentialsNotFoundError,
    HomeDirectoryError,
    ServerStateError,
    StartupError,
    StartupTimeoutError,
    VaultTestError,
)
from .launcher import Launcher

log = logging.getLogger(__name__)

UNSEAL_KEY_PREFIX = 'Unseal Key:'
ROOT_TOKEN_PREFIX = 'Root Token:'
SEPARATOR = ': '


class ServerState(str, enum.Enum):
    UNSTARTED = 'unstarted'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPED = 'stopped'


def parse_credential(line: str, prefix: str) -> Optional[str]:
    """Value of a 'Prefix: value' line, or None if the line doesn't carry one"""
    if not line.startswith(prefix):
        return None
    _, sep, value = line.partition(SEPARATOR)
    if not sep:
        return None
    return value.strip() or None


class VaultServer:
    """Manages the lifecycle of a single test vault server"""
    DEFAULT_ADDRESS = '127.0.0.1:8200'
    TOKEN_FILE_NAME = '.vault-token'
    STARTUP_TIMEOUT = 30.0
    POLL_INTERVAL = 0.1

    def __init__(self, address: str = '', binary: Optional[str] = None,
                 startup_timeout: Optional[float] = None):
        self.address = address or self.DEFAULT_ADDRESS
        self.startup_timeout = startup_timeout if startup_timeout is not None else self.STARTUP_TIMEOUT
        self.state = ServerState.UNSTARTED
        self.unseal_key = ''
        self.root_token = ''
        self.user_token: Optional[bytes] = None
        self.user_token_file: Optional[Path] = None
        self._launcher = Launcher(self.address, binary=binary)

    def __repr__(self) -> str:
        return f'VaultServer(address={self.address!r}, state={self.state.value})'

    def __enter__(self) -> 'VaultServer':
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def running(self) -> bool:
        return self.state is ServerState.RUNNING

    @property
    def process(self):
        return self._launcher.process

    @property
    def url(self) -> str:
        return f'http://{self.address}'

    @property
    def config_path(self) -> Optional[Path]:
        """Generated config file of a normal mode server, while it is running"""
        return self._launcher.config_path

    def start_dev(self) -> None:
        """Start a dev mode server and block until its unseal key and root token are printed"""
        self._begin_start()
        log.info('Starting dev server on %s', self.address)
        try:
            process, output = self._launcher.launch_dev()
        except VaultTestError:
            self.state = ServerState.STOPPED
            raise
        try:
            self._read_credentials(output.lines(self.startup_timeout))
        except StartupError:
            log.error('Dev server on %s (pid=%s) failed to start', self.address, process.pid)
            self._abort()
            raise
        finally:
            output.detach()
        self.state = ServerState.RUNNING

    def start(self) -> None:
        """Start a normal mode server. It comes up sealed and prints no credentials."""
        self._begin_start()
        log.info('Starting server on %s', self.address)
        try:
            self._launcher.launch_server()
        except VaultTestError:
            self.state = ServerState.STOPPED
            raise
        self.state = ServerState.RUNNING

    def shutdown(self) -> None:
        """Kill the server and put back the user's token file"""
        if self.running:
            log.info('Stopping server on %s (pid=%s)', self.address, self.process.pid)
            self._launcher.kill()
        self._launcher.cleanup()
        self._restore_user_token()
        if self.state is not ServerState.UNSTARTED:
            self.state = ServerState.STOPPED

    def client(self) -> hvac.Client:
        """Client for this server carrying the root token (empty in normal mode)"""
        return build_client(self.address, self.root_token)

    def wait_ready(self, timeout: Optional[float] = None) -> None:
        """Block until the listener answers HTTP; a sealed server answering 503 counts as ready"""
        if timeout is None:
            timeout = self.startup_timeout
        deadline = time.monotonic() + timeout
        while True:
            remaining = max(deadline - time.monotonic(), self.POLL_INTERVAL)
            try:
                requests.get(f'{self.url}/v1/sys/health', timeout=min(remaining, self.POLL_INTERVAL * 10))
                return
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout):
                if time.monotonic() >= deadline:
                    raise StartupTimeoutError(f'Server on {self.address} not listening after {timeout}s') from None
                time.sleep(self.POLL_INTERVAL)

    def _begin_start(self) -> None:
        if self.state is not ServerState.UNSTARTED:
            raise ServerStateError(f'Server on {self.address} is {self.state.value}; construct a new one')
        self._save_user_token()
        self.state = ServerState.STARTING

    def _read_credentials(self, lines: Iterable[str]) -> None:
        for line in lines:
            if not self.unseal_key:
                self.unseal_key = parse_credential(line, UNSEAL_KEY_PREFIX) or ''
            if not self.root_token:
                self.root_token = parse_credential(line, ROOT_TOKEN_PREFIX) or ''
            if self.unseal_key and self.root_token:
                return

        missing = [name for name, value in (('unseal key', self.unseal_key),
                                            ('root token', self.root_token)) if not value]
        raise CredentialsNotFoundError(
            f"Server output ended before {' and '.join(missing)} appeared")

    def _abort(self) -> None:
        self._launcher.kill()
        self._launcher.cleanup()
        self._restore_user_token()
        self.state = ServerState.STOPPED

    def _save_user_token(self) -> None:
        # the server overwrites this file, so keep whatever the user had
        if self.user_token_file is not None:
            return
        try:
            home = Path.home()
        except (RuntimeError, KeyError) as e:
            raise HomeDirectoryError(f"Unable to determine user's home dir: {e}") from e

        self.user_token_file = home / self.TOKEN_FILE_NAME
        try:
            self.user_token = self.user_token_file.read_bytes()
        except FileNotFoundError:
            self.user_token = None
        except OSError as e:
            log.warning('Could not read %s, it will not be restored: %s', self.user_token_file, e)
            self.user_token = None

    def _restore_user_token(self) -> None:
        if self.user_token is None or self.user_token_file is None:
            return
        try:
            self.user_token_file.write_bytes(self.user_token)
            os.chmod(self.user_token_file, 0o600)
        except OSError as e:
            log.warning('Failed to restore %s: %s', self.user_token_file, e)
