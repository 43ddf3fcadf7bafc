"""Tests for CLI argv handling, listing, validation, and the run workflow."""

from __future__ import annotations

from pathlib import Path

import pytest

from sear.cli import SearModalCLI
from sear.cli.main import _count_verbose, _normalize_argv
from sear.cli.profiles import render_profile_table
from sear.cli.run import RunCLI, run_session
from sear.config import Profile, SearConfig, VMSettings, config_from_dict
from sear.errors import ConfigError, ValidationError
from sear.util import CmdResult
from sear.vm import MicroVM

GOOD = '''
default_profile = "dev"

[profiles.dev]
tools = ["echo hi"]

[profiles.dev.vm]
vcpus = 2
memory_mib = 1024
kernel = "k"
rootfs = "r"
'''

BAD = '''
[profiles.broken.vm]
vcpus = 0
memory_mib = 256
kernel = "k"
rootfs = "r"
'''


def _write(tmp_path: Path, text: str) -> Path:
    fpath = tmp_path / 'config.toml'
    fpath.write_text(text, encoding='utf-8')
    return fpath


def _run(argv: list[str]) -> int:
    rc = SearModalCLI.main(argv=_normalize_argv(argv), _noexit=True)
    return 0 if rc is None else int(rc)


def test_normalize_argv() -> None:
    assert _normalize_argv(['list-profiles']) == ['list_profiles']
    assert _normalize_argv(['validate-config', '-v']) == [
        'validate_config',
        '-v',
    ]
    assert _normalize_argv(['run', 'dev', '--no-mount']) == [
        'run',
        '--profile',
        'dev',
        '--no-mount',
    ]
    assert _normalize_argv(['run', '--profile', 'dev']) == [
        'run',
        '--profile',
        'dev',
    ]
    assert _normalize_argv([]) == []


def test_normalize_argv_with_leading_options() -> None:
    assert _normalize_argv(['-v', 'run', 'dev']) == [
        'run',
        '-v',
        '--profile',
        'dev',
    ]
    assert _normalize_argv(['-c', 'cfg.toml', 'list-profiles']) == [
        'list_profiles',
        '-c',
        'cfg.toml',
    ]
    assert _normalize_argv(['--help']) == ['--help']


def test_count_verbose() -> None:
    assert _count_verbose(['run', '-vv']) == 2
    assert _count_verbose(['--verbose', '-v']) == 2
    assert _count_verbose(['-c', 'x']) == 0


def test_validate_config_cli(tmp_path: Path, capsys) -> None:
    assert _run(['validate-config', '--config', str(_write(tmp_path, GOOD))]) == 0
    out = capsys.readouterr().out
    assert 'Configuration is valid' in out
    assert '- dev' in out

    assert _run(['validate-config', '--config', str(_write(tmp_path, BAD))]) == 1
    out = capsys.readouterr().out
    assert "profile 'broken': vcpus must be greater than 0" in out


def test_validate_config_cli_no_profiles(tmp_path: Path, capsys) -> None:
    fpath = _write(tmp_path, 'default_profile = ""\n')
    assert _run(['validate-config', '--config', str(fpath)]) == 1
    assert 'no profiles defined in configuration' in capsys.readouterr().out


def test_list_profiles_cli(tmp_path: Path, capsys) -> None:
    assert _run(['list-profiles', '--config', str(_write(tmp_path, GOOD))]) == 0
    out = capsys.readouterr().out
    assert 'Default profile: dev' in out
    assert 'dev *' in out


def test_render_profile_table_defaults() -> None:
    assert render_profile_table(SearConfig()) == 'No profiles configured.'
    cfg = SearConfig(profiles={'bare': Profile()})
    lines = render_profile_table(cfg).splitlines()
    assert lines[0] == 'Default profile: none'
    assert lines[-1].split() == ['bare', '1', '512', 'default', '0']


def test_run_rejects_invalid_profile(tmp_path: Path) -> None:
    fpath = _write(tmp_path, BAD)
    with pytest.raises(ValidationError):
        RunCLI.main(argv=False, config=str(fpath), profile='broken')
    with pytest.raises(ConfigError, match='not found'):
        RunCLI.main(argv=False, config=str(fpath), profile='missing')


def test_run_always_stops(tmp_path: Path, monkeypatch) -> None:
    fpath = _write(tmp_path, GOOD)
    events = []
    monkeypatch.setattr('sear.cli.run.require_host_commands', lambda: None)
    monkeypatch.setattr(MicroVM, 'start', lambda self: events.append('start'))
    monkeypatch.setattr(
        MicroVM, 'stop', lambda self: events.append('stop') or None
    )

    def boom(*args, **kwargs):
        events.append('session')
        raise TimeoutError('no ssh')

    monkeypatch.setattr('sear.cli.run.run_session', boom)
    with pytest.raises(TimeoutError):
        RunCLI.main(argv=False, config=str(fpath))
    assert events == ['start', 'session', 'stop']


class ScriptedRemote:
    def __init__(self):
        self.events: list[str] = []

    def wait_until_ready(self, *, timeout_s: float) -> None:
        self.events.append(f'wait {timeout_s:g}')

    def execute(self, command: str) -> CmdResult:
        self.events.append(command)
        return CmdResult(0, '', '')

    def shell(self) -> int:
        self.events.append('shell')
        return 0


def test_run_session_order(tmp_path: Path, monkeypatch) -> None:
    profile = Profile(
        vm=VMSettings(vcpus=1, memory_mib=512, kernel='k', rootfs='r'),
        tools=['echo hi'],
    )
    vm = MicroVM(profile)
    remote = ScriptedRemote()
    monkeypatch.setattr(MicroVM, 'remote_access', lambda self: remote)
    rc = run_session(vm, profile, mount_dir=tmp_path, ready_timeout=5)
    assert rc == 0
    assert remote.events[0] == 'wait 5'
    assert remote.events[1].startswith("echo 'nameserver 1.1.1.1'")
    assert remote.events[2].startswith('ip route add default via 172.16.0.1')
    assert remote.events[3] == 'echo hi'
    assert remote.events[4] == 'mkdir -p /host'
    assert remote.events[5].startswith('mount -t virtiofs')
    assert remote.events[-1] == 'shell'


def test_render_profile_table_tolerates_wrong_types() -> None:
    cfg = config_from_dict(
        {'profiles': {'dev': {'vm': {'vcpus': '2', 'memory_mib': 768}}}}
    )
    lines = render_profile_table(cfg).splitlines()
    assert lines[-1].split() == ['dev', '1', '768', 'default', '0']


def test_list_profiles_cli_with_leading_config(tmp_path: Path, capsys) -> None:
    fpath = _write(tmp_path, GOOD)
    assert _run(['-c', str(fpath), 'list-profiles']) == 0
    assert 'dev *' in capsys.readouterr().out
