"""Host dependency checks run before any privileged setup."""

from __future__ import annotations

from loguru import logger

from .errors import SearError
from .util import which

log = logger

REQUIRED_CMDS = [
    'ip',
    'iptables',
    'sysctl',
    'ssh',
]
OPTIONAL_CMDS = ['firecracker', 'sudo']


def check_commands() -> tuple[list[str], list[str]]:
    missing = [c for c in REQUIRED_CMDS if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def require_host_commands() -> None:
    missing, missing_opt = check_commands()
    for cmd in missing_opt:
        log.debug('Optional host command not found: {}', cmd)
    if missing:
        raise SearError(
            'Missing required host commands: '
            + ', '.join(missing)
            + '. Install iproute2, iptables, procps and openssh-client.'
        )
