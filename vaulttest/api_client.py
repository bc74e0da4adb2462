import os
import re
from typing import Any, Dict, Mapping, Optional

import hvac
import requests
from requests.adapters import HTTPAdapter

from .errors import ClientConfigError

DEFAULT_TIMEOUT = 30

_TRUE = {'1', 't', 'true'}
_FALSE = {'0', 'f', 'false'}

_NUMBER = re.compile(r'\d+(?:\.\d+)?')
_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ns|us|\u00b5s|ms|s|m|h)')
_UNITS = {'ns': 1e-9, 'us': 1e-6, '\u00b5s': 1e-6, 'ms': 1e-3, 's': 1, 'm': 60, 'h': 3600}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ClientConfigError(f'{name} must be a boolean, got {value!r}')


def _parse_seconds(name: str, value: str) -> float:
    """Bare numbers are seconds, anything else a Go style duration such as 1m30s or 500ms"""
    raw = value.strip()
    if _NUMBER.fullmatch(raw):
        return float(raw)
    if raw.startswith('-'):
        raise ClientConfigError(f'{name} must not be negative, got {value!r}')
    parts = _DURATION_PART.findall(raw)
    if not parts or ''.join(number + unit for number, unit in parts) != raw:
        raise ClientConfigError(f'{name} must be a duration like 30, 30s or 1m, got {value!r}')
    return sum(float(number) * _UNITS[unit] for number, unit in parts)


def _parse_count(name: str, value: str) -> int:
    try:
        count = int(value.strip())
    except ValueError:
        raise ClientConfigError(f'{name} must be an integer, got {value!r}') from None
    if count < 0:
        raise ClientConfigError(f'{name} must not be negative, got {value!r}')
    return count


def read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Translate VAULT_* variables into hvac.Client keyword arguments.

    VAULT_ADDR is deliberately left out: the client always points at the
    test server it was built for.
    """
    kwargs: Dict[str, Any] = {'timeout': DEFAULT_TIMEOUT}

    ca = environ.get('VAULT_CACERT') or environ.get('VAULT_CAPATH')
    if ca:
        kwargs['verify'] = ca
    if environ.get('VAULT_SKIP_VERIFY'):
        if _parse_bool('VAULT_SKIP_VERIFY', environ['VAULT_SKIP_VERIFY']):
            kwargs['verify'] = False

    cert, key = environ.get('VAULT_CLIENT_CERT'), environ.get('VAULT_CLIENT_KEY')
    if bool(cert) != bool(key):
        raise ClientConfigError('VAULT_CLIENT_CERT and VAULT_CLIENT_KEY must be set together')
    if cert:
        kwargs['cert'] = (cert, key)

    if environ.get('VAULT_CLIENT_TIMEOUT'):
        kwargs['timeout'] = _parse_seconds('VAULT_CLIENT_TIMEOUT', environ['VAULT_CLIENT_TIMEOUT'])

    if environ.get('VAULT_NAMESPACE'):
        kwargs['namespace'] = environ['VAULT_NAMESPACE']

    session = requests.Session()
    if environ.get('VAULT_MAX_RETRIES'):
        retries = _parse_count('VAULT_MAX_RETRIES', environ['VAULT_MAX_RETRIES'])
        adapter = HTTPAdapter(max_retries=retries)
        session.mount('http://', adapter)
        session.mount('https://', adapter)
    kwargs['session'] = session

    return kwargs


def build_client(address: str, token: str, environ: Optional[Mapping[str, str]] = None) -> hvac.Client:
    """Client for http://address authenticated with token"""
    if environ is None:
        environ = os.environ
    kwargs = read_environment(environ)
    try:
        return hvac.Client(url=f'http://{address}', token=token, **kwargs)
    except (ValueError, TypeError, OSError) as e:
        raise ClientConfigError(f'Failed to create test vault api client: {e}') from e
