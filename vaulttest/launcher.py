import json
import logging
import os
import queue
import shutil
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import IO, Iterator, List, Optional, Tuple

from .errors import BinaryNotFoundError, LaunchError, StartupTimeoutError

log = logging.getLogger(__name__)

CONFIG_TEMPLATE = """ui = true
disable_mlock = true

listener "tcp" {{
    address     = {address}
    tls_disable = "true"
}}

storage "inmem" {{}}
"""

_EOF = object()


def render_config(address: str) -> str:
    """Minimal in-memory, TLS-less server config listening on address"""
    return CONFIG_TEMPLATE.format(address=json.dumps(address))


class OutputReader:
    """Drains a process stream on a background thread so lines can be read with a deadline"""

    def __init__(self, stream: IO[str], name: str = 'vault-stdout'):
        self._stream = stream
        self._queue: 'queue.Queue' = queue.Queue()
        self._detached = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._pump, name=name, daemon=True)
        self._thread.start()

    def _pump(self) -> None:
        try:
            for line in self._stream:
                line = line.rstrip('\r\n')
                with self._lock:
                    if self._detached.is_set():
                        log.debug('vault: %s', line)
                    else:
                        self._queue.put(line)
        except (OSError, ValueError):
            # pipe torn down mid-read
            pass
        finally:
            self._stream.close()
            self._queue.put(_EOF)

    def lines(self, timeout: float) -> Iterator[str]:
        """Yield lines until the stream ends; raise once timeout seconds have passed"""
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise StartupTimeoutError(f'No complete startup output within {timeout}s')
            try:
                line = self._queue.get(timeout=remaining)
            except queue.Empty:
                raise StartupTimeoutError(f'No complete startup output within {timeout}s')
            if line is _EOF:
                return
            yield line

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def detach(self) -> None:
        """Stop buffering; anything the process prints from now on goes to the debug log"""
        with self._lock:
            self._detached.set()
            while True:
                try:
                    line = self._queue.get_nowait()
                except queue.Empty:
                    break
                if line is not _EOF:
                    log.debug('vault: %s', line)


class Launcher:
    """Builds and spawns the vault server process for one address"""
    BINARY = 'vault'
    CONFIG_NAME = 'vault.hcl'

    def __init__(self, address: str, binary: Optional[str] = None):
        self.address = address
        self.binary = binary or self.BINARY
        self.process: Optional[subprocess.Popen] = None
        self.output: Optional[OutputReader] = None
        self._config_dir: Optional[tempfile.TemporaryDirectory] = None

    def locate(self) -> str:
        path = shutil.which(self.binary)
        if path is None:
            raise BinaryNotFoundError(f"'{self.binary}' is not installed and available on the path")
        return path

    def dev_command(self, executable: str) -> List[str]:
        return [executable, 'server', '-dev', '-dev-no-store-token',
                '-dev-listen-address', self.address]

    def server_command(self, executable: str, config_path: Path) -> List[str]:
        return [executable, 'server', f'-config={config_path}']

    @property
    def config_path(self) -> Optional[Path]:
        if self._config_dir is None:
            return None
        return Path(self._config_dir.name) / self.CONFIG_NAME

    def launch_dev(self) -> Tuple[subprocess.Popen, OutputReader]:
        """Start a dev mode server; stderr is shared with ours, stdout is returned for scanning"""
        command = self.dev_command(self.locate())
        self.process = self._spawn(command, stdout=subprocess.PIPE, text=True, errors='replace')
        self.output = OutputReader(self.process.stdout)
        return self.process, self.output

    def launch_server(self) -> subprocess.Popen:
        """Start a sealed server from a generated config file; both streams are shared with ours"""
        executable = self.locate()
        try:
            self._config_dir = tempfile.TemporaryDirectory(prefix='vaulttest-')
            self.config_path.write_text(render_config(self.address))
        except OSError as e:
            self.cleanup()
            raise LaunchError(f'Unable to write server config: {e}') from e
        log.debug('Wrote server config to %s', self.config_path)

        command = self.server_command(executable, self.config_path)
        self.process = self._spawn(command)
        return self.process

    def _spawn(self, command: List[str], **kwargs) -> subprocess.Popen:
        try:
            process = subprocess.Popen(command, env={**os.environ}, **kwargs)
        except OSError as e:
            self.cleanup()
            raise LaunchError(f'Unable to start {command[0]}: {e}') from e
        log.debug('Spawned %s (pid=%s)', ' '.join(command), process.pid)
        return process

    def kill(self) -> None:
        """SIGKILL the process and reap it; failures are logged only"""
        if self.process is None:
            return
        try:
            self.process.kill()
            self.process.wait(timeout=10)
        except (OSError, subprocess.TimeoutExpired) as e:
            log.warning('Failed to kill vault (pid=%s): %s', self.process.pid, e)
        if self.output is not None:
            # the pipe closes once the reader sees EOF
            self.output.join(timeout=5)

    def cleanup(self) -> None:
        if self._config_dir is not None:
            self._config_dir.cleanup()
            self._config_dir = None
