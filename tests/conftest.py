"""Shared fakes for host commands and the Firecracker control socket."""

from __future__ import annotations

import json
from typing import Sequence

import httpx
import pytest

from sear.config import Profile, VMSettings
from sear.util import CmdResult


class FakeHost:
    """Records privileged commands and keeps just enough host state.

    Tracks TAP devices and NAT masquerade rules so tests can check what a
    sequence of commands leaves behind.
    """

    def __init__(self, default_dev: str = 'wlp2s0'):
        self.default_dev = default_dev
        self.calls: list[list[str]] = []
        self.taps: set[str] = set()
        self.nat_rules: list[str] = []
        self.fail_prefixes: list[list[str]] = []
        self.route_json = True

    def fail_on(self, *prefix: str) -> None:
        self.fail_prefixes.append(list(prefix))

    def __call__(self, cmd: Sequence[str]) -> CmdResult:
        cmd = list(cmd)
        self.calls.append(cmd)
        for prefix in self.fail_prefixes:
            if cmd[: len(prefix)] == prefix:
                return CmdResult(1, '', 'simulated failure')
        if cmd[:2] == ['ip', '-j']:
            if not self.route_json:
                return CmdResult(255, '', 'Option "-j" is unknown')
            out = json.dumps([{'dst': 'default', 'dev': self.default_dev}])
            return CmdResult(0, out, '')
        if cmd[:3] == ['ip', 'route', 'show']:
            out = f'default via 192.168.1.1 dev {self.default_dev} proto dhcp\n'
            return CmdResult(0, out, '')
        if cmd[:3] == ['ip', 'link', 'del']:
            if cmd[3] not in self.taps:
                return CmdResult(1, '', 'Cannot find device')
            self.taps.discard(cmd[3])
            return CmdResult(0, '', '')
        if cmd[:3] == ['ip', 'tuntap', 'add']:
            if cmd[4] in self.taps:
                return CmdResult(1, '', 'Device or resource busy')
            self.taps.add(cmd[4])
            return CmdResult(0, '', '')
        if cmd[:3] == ['iptables', '-t', 'nat']:
            iface = cmd[cmd.index('-o') + 1]
            if cmd[3] == '-A':
                self.nat_rules.append(iface)
            elif cmd[3] == '-D':
                if iface not in self.nat_rules:
                    return CmdResult(1, '', 'Bad rule')
                self.nat_rules.remove(iface)
            return CmdResult(0, '', '')
        return CmdResult(0, '', '')

    def commands_starting(self, *prefix: str) -> list[list[str]]:
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]


class FakeControlSocket:
    """httpx MockTransport handler standing in for Firecracker's API."""

    def __init__(self):
        self.requests: list[tuple[str, str, dict]] = []
        self.status_for: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b'{}')
        self.requests.append((request.method, request.url.path, body))
        status = self.status_for.get(request.url.path, 204)
        if status >= 300:
            return httpx.Response(
                status, json={'fault_message': 'simulated fault'}
            )
        return httpx.Response(status)

    @property
    def paths(self) -> list[str]:
        return [path for _, path, _ in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def fake_socket() -> FakeControlSocket:
    return FakeControlSocket()


@pytest.fixture
def socket_file(tmp_path):
    path = tmp_path / 'firecracker.socket'
    path.write_text('', encoding='utf-8')
    return str(path)


@pytest.fixture
def profile() -> Profile:
    return Profile(
        vm=VMSettings(vcpus=2, memory_mib=1024, kernel='k', rootfs='r'),
        tools=['echo hi'],
    )
