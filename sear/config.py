"""Profile configuration: dataclass sections, TOML loading, and validation."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional

from loguru import logger

from .errors import ConfigError
from .runtime import SSH_KEY_ENV, TAP_DEVICE_ENV, config_root

log = logger

DEFAULT_KERNEL_ARGS = 'console=ttyS0 reboot=k panic=1'
CONFIG_NAME = 'config.toml'


@dataclass
class NetworkConfig:
    tap_device: str = ''
    tap_ip: str = ''
    guest_ip: str = ''
    gateway_ip: str = ''
    dns_server: str = ''
    host_interface: str = ''


DEFAULT_NETWORK = NetworkConfig(
    tap_device='tap0',
    tap_ip='172.16.0.1',
    guest_ip='172.16.0.2',
    gateway_ip='172.16.0.1',
    dns_server='1.1.1.1',
)


@dataclass
class VMSettings:
    vcpus: int = 0
    memory_mib: int = 0
    kernel: str = ''
    kernel_args: str = ''
    rootfs: str = ''

    @property
    def effective_kernel_args(self) -> str:
        return self.kernel_args or DEFAULT_KERNEL_ARGS


@dataclass
class Profile:
    vm: VMSettings = field(default_factory=VMSettings)
    tools: list[str] = field(default_factory=list)
    network: Optional[NetworkConfig] = None


@dataclass
class SSHConfig:
    key_path: str = 'sear_key'
    username: str = 'root'


@dataclass
class ShareConfig:
    tag: str = 'sear_share'
    guest_dst: str = '/host'
    # Bind fallback only works when the guest sees the host filesystem.
    bind_fallback: bool = True


@dataclass
class SearConfig:
    default_profile: str = ''
    profiles: dict[str, Profile] = field(default_factory=dict)
    network: Optional[NetworkConfig] = None
    ssh: SSHConfig = field(default_factory=SSHConfig)
    share: ShareConfig = field(default_factory=ShareConfig)
    verbosity: int = 1

    def get_profile(self, name: str) -> Profile:
        """Return the named profile with the global network section merged in."""
        if name not in self.profiles:
            raise ConfigError(
                f"profile '{name}' not found. "
                f'Available profiles: {sorted(self.profiles)}'
            )
        profile = self.profiles[name]
        if profile.network is None and self.network is not None:
            profile = replace(profile, network=replace(self.network))
        return profile


def resolve_network(override: Optional[NetworkConfig]) -> NetworkConfig:
    """Return the override with blank fields taken from the fixed default."""
    if override is None:
        return replace(DEFAULT_NETWORK)
    merged = replace(DEFAULT_NETWORK)
    for f in fields(NetworkConfig):
        value = getattr(override, f.name)
        if value:
            setattr(merged, f.name, value)
    return merged


def _fill(obj, raw: dict, where: str) -> None:
    for k, v in raw.items():
        if hasattr(obj, k):
            setattr(obj, k, v)
        else:
            log.warning('Ignoring unknown config key {}.{}', where, k)


def _network_from_dict(raw: object, where: str) -> Optional[NetworkConfig]:
    if not isinstance(raw, dict):
        return None
    net = NetworkConfig()
    _fill(net, raw, where)
    return net


def _profile_from_dict(name: str, raw: dict) -> Profile:
    profile = Profile()
    vm = raw.get('vm', None)
    if isinstance(vm, dict):
        _fill(profile.vm, vm, f'profiles.{name}.vm')
    tools = raw.get('tools', [])
    if not isinstance(tools, list):
        raise ConfigError(f"profile '{name}': tools must be a list of commands")
    profile.tools = [str(t) for t in tools]
    profile.network = _network_from_dict(
        raw.get('network', None), f'profiles.{name}.network'
    )
    return profile


def config_from_dict(raw: dict) -> SearConfig:
    cfg = SearConfig()
    cfg.default_profile = str(raw.get('default_profile', '') or '').strip()
    profiles = raw.get('profiles', {})
    if not isinstance(profiles, dict):
        raise ConfigError('profiles must be a table of named profiles')
    for name, body in profiles.items():
        if not isinstance(body, dict):
            raise ConfigError(f"profile '{name}' must be a table")
        cfg.profiles[name] = _profile_from_dict(name, body)
    cfg.network = _network_from_dict(raw.get('network', None), 'network')
    if isinstance(raw.get('ssh', None), dict):
        _fill(cfg.ssh, raw['ssh'], 'ssh')
    if isinstance(raw.get('share', None), dict):
        _fill(cfg.share, raw['share'], 'share')
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def apply_env_overrides(cfg: SearConfig) -> SearConfig:
    tap_device = os.environ.get(TAP_DEVICE_ENV, '')
    if tap_device:
        if cfg.network is None:
            cfg.network = NetworkConfig()
        cfg.network.tap_device = tap_device
        # Profiles with their own network section still honor the override.
        for profile in cfg.profiles.values():
            if profile.network is not None:
                profile.network.tap_device = tap_device
    ssh_key = os.environ.get(SSH_KEY_ENV, '')
    if ssh_key:
        cfg.ssh.key_path = ssh_key
    return cfg


def candidate_paths() -> list[Path]:
    return [config_root() / CONFIG_NAME, Path.cwd() / CONFIG_NAME]


def find_config(path: str | Path | None = None) -> Path:
    if path:
        p = Path(path).expanduser()
        if not p.exists():
            raise ConfigError(f'config file not found: {p}')
        return p
    searched = candidate_paths()
    for p in searched:
        if p.exists():
            return p
    raise ConfigError(
        'config file not found. Searched in: '
        + ', '.join(str(p) for p in searched)
    )


def load(path: str | Path | None = None) -> SearConfig:
    fpath = find_config(path)
    try:
        raw = tomllib.loads(fpath.read_text(encoding='utf-8'))
    except tomllib.TOMLDecodeError as ex:
        raise ConfigError(f'error reading config file {fpath}: {ex}') from ex
    cfg = apply_env_overrides(config_from_dict(raw))
    log.debug(
        'Loaded configuration from {} with {} profiles',
        fpath,
        len(cfg.profiles),
    )
    return cfg


def validate_profile(name: str, profile: Profile) -> list[str]:
    problems: list[str] = []
    if not isinstance(profile.vm.vcpus, int) or profile.vm.vcpus <= 0:
        problems.append(f"profile '{name}': vcpus must be greater than 0")
    if not isinstance(profile.vm.memory_mib, int) or profile.vm.memory_mib <= 0:
        problems.append(f"profile '{name}': memory_mib must be greater than 0")
    for key in ('kernel', 'rootfs'):
        value = getattr(profile.vm, key)
        if not isinstance(value, str):
            problems.append(f"profile '{name}': {key} must be a string path")
        elif not value:
            problems.append(f"profile '{name}': {key} is required")
    return problems


def validate_config(cfg: SearConfig) -> list[str]:
    if not cfg.profiles:
        return ['no profiles defined in configuration']
    problems: list[str] = []
    for name in sorted(cfg.profiles):
        problems.extend(validate_profile(name, cfg.profiles[name]))
    if cfg.default_profile and cfg.default_profile not in cfg.profiles:
        problems.append(
            f"default_profile '{cfg.default_profile}' is not a defined profile"
        )
    return problems
