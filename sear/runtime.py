"""Runtime locations for the control socket, SSH key, and ssh arguments."""

from __future__ import annotations

import os
from pathlib import Path

import ubelt as ub

from .util import expand

DEFAULT_CONTROL_SOCKET = '/tmp/firecracker.socket'
CONTROL_SOCKET_ENV = 'FIRECRACKER_API_SOCKET'
SSH_KEY_ENV = 'SEAR_SSH_KEY'
TAP_DEVICE_ENV = 'SEAR_TAP_DEVICE'
DEFAULT_SSH_KEY = 'sear_key'


def config_root() -> Path:
    # Respects XDG_CONFIG_HOME; no directory is created here.
    return Path(ub.Path.appdir('sear', type='config'))


def control_socket_path() -> str:
    return os.environ.get(CONTROL_SOCKET_ENV) or DEFAULT_CONTROL_SOCKET


def resolve_ssh_key(key_path: str = '') -> str:
    raw = os.environ.get(SSH_KEY_ENV) or key_path or DEFAULT_SSH_KEY
    path = Path(expand(raw))
    if not path.is_absolute():
        path = config_root() / path
    return str(path)


def ssh_base_args(
    ident: str,
    *,
    port: int = 22,
    strict_host_key_checking: str = 'no',
    connect_timeout: int | None = None,
    batch_mode: bool = False,
    user_known_hosts_file: str | None = '/dev/null',
) -> list[str]:
    args: list[str] = []
    if batch_mode:
        args.extend(['-o', 'BatchMode=yes'])
    if connect_timeout is not None:
        args.extend(['-o', f'ConnectTimeout={connect_timeout}'])
    args.extend(['-o', f'StrictHostKeyChecking={strict_host_key_checking}'])
    if user_known_hosts_file:
        args.extend(['-o', f'UserKnownHostsFile={user_known_hosts_file}'])
    args.extend(['-o', 'LogLevel=ERROR'])
    args.extend(['-o', 'IdentitiesOnly=yes'])
    args.extend(['-p', str(port), '-i', ident])
    return args
