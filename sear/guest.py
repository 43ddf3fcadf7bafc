"""Best-effort guest preparation run over SSH once the VM is reachable."""

from __future__ import annotations

import shlex

from loguru import logger

from .config import NetworkConfig
from .remote import RemoteAccess
from .util import CmdError

log = logger


def guest_network_commands(net: NetworkConfig) -> list[str]:
    resolv_line = shlex.quote(f'nameserver {net.dns_server}')
    return [
        f'echo {resolv_line} > /etc/resolv.conf',
        # The route may already exist when the kernel cmdline set it up.
        f'ip route add default via {shlex.quote(net.gateway_ip)} dev eth0 '
        '2>/dev/null || true',
    ]


def configure_guest_networking(remote: RemoteAccess, net: NetworkConfig) -> int:
    """Point the guest at the DNS server and gateway; returns failure count."""
    log.info('Configuring guest networking...')
    failures = 0
    for cmd in guest_network_commands(net):
        try:
            remote.execute(cmd)
        except CmdError as ex:
            failures += 1
            log.warning('Command failed: {}: {}', cmd, ex)
    return failures


def run_tools(remote: RemoteAccess, tools: list[str]) -> list[str]:
    """Run each profile tool command in order; returns the ones that failed."""
    if not tools:
        log.info('No tools to run')
        return []
    log.info('Running {} tool commands...', len(tools))
    failed: list[str] = []
    for idx, tool in enumerate(tools, start=1):
        log.info('Running tool {}/{}: {}', idx, len(tools), tool)
        try:
            remote.execute(tool)
        except CmdError as ex:
            failed.append(tool)
            log.warning('Tool command failed: {}', ex)
    return failed
