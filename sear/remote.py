"""SSH-backed command execution and interactive shells inside the guest."""

from __future__ import annotations

import time
from dataclasses import dataclass

from loguru import logger

from .runtime import ssh_base_args
from .util import CmdResult, run_cmd

log = logger


@dataclass(frozen=True)
class RemoteAccess:
    """Where and how to reach the guest over SSH.

    Holds no connection: every call spawns its own ``ssh`` process which
    exits when the command or shell finishes.

    Host key checking is off by default since the guest is created fresh for
    each run and its key is never known ahead of time. Pass
    ``strict_host_key_checking='accept-new'`` (or ``'yes'``) to turn it on.
    """

    host: str
    port: int
    user: str
    key_path: str
    strict_host_key_checking: str = 'no'

    @property
    def target(self) -> str:
        return f'{self.user}@{self.host}'

    def _ssh_args(self, **kwargs) -> list[str]:
        insecure = self.strict_host_key_checking == 'no'
        known_hosts = '/dev/null' if insecure else None
        return ssh_base_args(
            self.key_path,
            port=self.port,
            strict_host_key_checking=self.strict_host_key_checking,
            user_known_hosts_file=known_hosts,
            **kwargs,
        )

    def command_argv(self, command: str) -> list[str]:
        return ['ssh', *self._ssh_args(batch_mode=True), self.target, command]

    def execute(self, command: str) -> CmdResult:
        """Run one command, raising CmdError if it exits non-zero."""
        log.debug('Executing on {}: {}', self.target, command)
        return run_cmd(
            self.command_argv(command), sudo=False, check=True, capture=True
        )

    def probe(self, *, connect_timeout: int = 3) -> bool:
        cmd = [
            'ssh',
            *self._ssh_args(batch_mode=True, connect_timeout=connect_timeout),
            self.target,
            'true',
        ]
        return run_cmd(cmd, sudo=False, check=False, capture=True).code == 0

    def wait_until_ready(
        self, *, timeout_s: float = 60, interval_s: float = 1.0
    ) -> None:
        deadline = time.monotonic() + timeout_s
        while True:
            if self.probe():
                log.info('SSH is ready on {}', self.host)
                return
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f'Timed out waiting for SSH on {self.host}:{self.port}'
                )
            time.sleep(interval_s)

    def shell(self) -> int:
        """Attach the local terminal to a login shell in the guest."""
        cmd = ['ssh', '-t', *self._ssh_args(), self.target]
        res = run_cmd(cmd, sudo=False, check=False, capture=False)
        return res.code
