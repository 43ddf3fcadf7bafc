"""Host-side TAP device and NAT masquerade setup for the guest."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from loguru import logger

from .errors import NetworkSetupError
from .util import CmdResult, run_cmd

log = logger

FALLBACK_HOST_INTERFACE = 'eth0'
TAP_PREFIX_LEN = 30

CommandRunner = Callable[[Sequence[str]], CmdResult]


def privileged_runner(cmd: Sequence[str]) -> CmdResult:
    return run_cmd(cmd, sudo=True, check=False, capture=True)


def query_runner(cmd: Sequence[str]) -> CmdResult:
    return run_cmd(cmd, sudo=False, check=False, capture=True)


def parse_default_route(output: str) -> Optional[str]:
    """Return the ``dev`` of the default route from ``ip`` output.

    Accepts either the JSON form (``ip -j route``) or the plain text form.

    Example:
        >>> parse_default_route('[{"dst":"default","gateway":"10.0.0.1","dev":"wlp2s0"}]')
        'wlp2s0'
        >>> parse_default_route('default via 10.0.0.1 dev enp3s0 proto dhcp')
        'enp3s0'
        >>> parse_default_route('') is None
        True
    """
    text = output.strip()
    if text.startswith('['):
        try:
            routes = json.loads(text)
        except ValueError:
            routes = []
        for route in routes:
            if isinstance(route, dict) and isinstance(route.get('dev'), str):
                return route['dev']
    for line in text.splitlines():
        if 'default' not in line:
            continue
        parts = line.split()
        for i, part in enumerate(parts[:-1]):
            if part == 'dev':
                return parts[i + 1]
    return None


def _nat_rule(action: str, host_interface: str) -> list[str]:
    return [
        'iptables',
        '-t',
        'nat',
        action,
        'POSTROUTING',
        '-o',
        host_interface,
        '-j',
        'MASQUERADE',
    ]


@dataclass(frozen=True)
class NetworkLease:
    """Host state created by :meth:`NetworkManager.setup`."""

    tap_device: str
    host_interface: str
    nat_installed: bool = False


class NetworkManager:
    """Create and remove the TAP link and NAT rule for one guest.

    Nothing here locks against another process using the same TAP name or
    NAT rule; one run per host is assumed.
    """

    def __init__(
        self,
        tap_device: str,
        tap_ip: str,
        *,
        host_interface: str = '',
        runner: Optional[CommandRunner] = None,
        query: Optional[CommandRunner] = None,
    ):
        self.tap_device = tap_device
        self.tap_ip = tap_ip
        self.host_interface = host_interface
        self._run = runner or privileged_runner
        self._query = query or runner or query_runner
        self.lease: Optional[NetworkLease] = None

    def detect_host_interface(self) -> Optional[str]:
        res = self._query(['ip', '-j', 'route', 'list', 'default'])
        dev = parse_default_route(res.stdout) if res.ok else None
        if dev:
            return dev
        res = self._query(['ip', 'route', 'show', 'default'])
        if not res.ok:
            log.debug('ip route show default failed: {}', res.stderr.strip())
            return None
        return parse_default_route(res.stdout)

    def _must(self, step: str, cmd: Sequence[str]) -> None:
        res = self._run(cmd)
        if not res.ok:
            raise NetworkSetupError(step, res)

    def setup(self) -> NetworkLease:
        log.info('Setting up network...')
        host_if = self.host_interface or self.detect_host_interface()
        if not host_if:
            log.warning(
                'Failed to detect host interface, using default: {}',
                FALLBACK_HOST_INTERFACE,
            )
            host_if = FALLBACK_HOST_INTERFACE
        self.host_interface = host_if

        self.lease = NetworkLease(self.tap_device, host_if)
        # Stale device from an earlier run; absence is fine.
        self._run(['ip', 'link', 'del', self.tap_device])
        self._must(
            'create TAP device',
            ['ip', 'tuntap', 'add', 'dev', self.tap_device, 'mode', 'tap'],
        )
        self._must(
            'configure TAP IP',
            [
                'ip',
                'addr',
                'add',
                f'{self.tap_ip}/{TAP_PREFIX_LEN}',
                'dev',
                self.tap_device,
            ],
        )
        self._must(
            'bring up TAP device',
            ['ip', 'link', 'set', 'dev', self.tap_device, 'up'],
        )
        log.info('TAP device {} configured', self.tap_device)

        self._must(
            'enable IP forwarding', ['sysctl', '-w', 'net.ipv4.ip_forward=1']
        )
        self._must(
            'set forward policy', ['iptables', '-P', 'FORWARD', 'ACCEPT']
        )
        self._run(_nat_rule('-D', host_if))
        self._must('configure NAT', _nat_rule('-A', host_if))
        self.lease = replace(self.lease, nat_installed=True)
        log.info('Network setup completed (NAT via {})', host_if)
        return self.lease

    def teardown(self, lease: Optional[NetworkLease] = None) -> Optional[str]:
        """Remove the TAP device and the installed NAT rule, never raising.

        The NAT rule is only deleted when setup got as far as adding it.
        Returns the last failure message, or None when everything went away
        cleanly or there was nothing to remove.
        """
        lease = lease or self.lease
        if lease is None:
            log.debug('No network lease held; nothing to tear down')
            return None
        log.info('Tearing down network...')
        last_error: Optional[str] = None
        res = self._run(['ip', 'link', 'del', lease.tap_device])
        if not res.ok:
            last_error = f'failed to remove TAP device: {res.stderr.strip()}'
            log.warning('{}', last_error)
        if lease.nat_installed:
            res = self._run(_nat_rule('-D', lease.host_interface))
            if not res.ok:
                last_error = (
                    f'failed to remove NAT rule: {res.stderr.strip()}'
                )
                log.warning('{}', last_error)
        if lease is self.lease:
            self.lease = None
        return last_error
