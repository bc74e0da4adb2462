import io
import logging
import os

import pytest

from vaulttest import BinaryNotFoundError, StartupTimeoutError
from vaulttest.launcher import Launcher, OutputReader, render_config


def test_render_config():
    assert render_config('127.0.0.1:8201') == (
        'ui = true\n'
        'disable_mlock = true\n'
        '\n'
        'listener "tcp" {\n'
        '    address     = "127.0.0.1:8201"\n'
        '    tls_disable = "true"\n'
        '}\n'
        '\n'
        'storage "inmem" {}\n'
    )


def test_render_config_escapes_address():
    """Quotes in the address cannot end the string literal"""
    config = render_config('evil"\n}')
    assert 'address     = "evil\\"\\n}"' in config


def test_commands():
    launcher = Launcher('127.0.0.1:8202')
    assert launcher.dev_command('/usr/bin/vault') == [
        '/usr/bin/vault', 'server', '-dev', '-dev-no-store-token',
        '-dev-listen-address', '127.0.0.1:8202',
    ]
    assert launcher.server_command('/usr/bin/vault', '/tmp/x/vault.hcl') == [
        '/usr/bin/vault', 'server', '-config=/tmp/x/vault.hcl',
    ]


def test_locate(fake_vault):
    path = fake_vault('#!/bin/sh\n')
    assert Launcher('127.0.0.1:8200').locate() == str(path)


def test_locate_custom_binary(tmp_path, monkeypatch):
    monkeypatch.setenv('PATH', str(tmp_path))
    with pytest.raises(BinaryNotFoundError, match="'bao'"):
        Launcher('127.0.0.1:8200', binary='bao').locate()


def test_kill_without_process():
    launcher = Launcher('127.0.0.1:8200')
    launcher.kill()
    launcher.cleanup()
    assert launcher.config_path is None


def test_reader_times_out():
    read_fd, write_fd = os.pipe()
    with os.fdopen(read_fd) as stream, os.fdopen(write_fd, 'w'):
        lines = OutputReader(stream).lines(timeout=0.2)
        with pytest.raises(StartupTimeoutError):
            next(lines)


def test_reader_detach_logs_remaining_output(caplog):
    reader = OutputReader(io.StringIO('one\ntwo\n'))
    assert next(reader.lines(timeout=5)) == 'one'

    with caplog.at_level(logging.DEBUG, logger='vaulttest.launcher'):
        reader.detach()
        reader._thread.join(timeout=5)
    assert 'vault: two' in caplog.text
