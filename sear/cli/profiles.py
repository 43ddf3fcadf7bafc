"""Profile listing and config validation commands."""

from __future__ import annotations

from ..config import SearConfig, validate_config
from ._common import _BaseCommand, _load_cfg

DEFAULT_VCPUS = 1
DEFAULT_MEMORY_MIB = 512


def _positive_or(value: object, default: int) -> int:
    if isinstance(value, int) and value > 0:
        return value
    return default


def render_profile_table(cfg: SearConfig) -> str:
    if not cfg.profiles:
        return 'No profiles configured.'
    default = cfg.default_profile or 'none'
    header = ('Profile', 'VCPUs', 'Memory (MiB)', 'RootFS', 'Tools')
    rows: list[tuple[str, ...]] = [header, tuple('-' * len(h) for h in header)]
    for name in sorted(cfg.profiles):
        profile = cfg.profiles[name]
        marker = ' *' if name == default else ''
        rows.append(
            (
                f'{name}{marker}',
                str(_positive_or(profile.vm.vcpus, DEFAULT_VCPUS)),
                str(_positive_or(profile.vm.memory_mib, DEFAULT_MEMORY_MIB)),
                str(profile.vm.rootfs or 'default'),
                str(len(profile.tools)),
            )
        )
    widths = [max(len(row[i]) for row in rows) for i in range(len(header))]
    lines = [f'Default profile: {default}', '']
    for row in rows:
        cells = [cell.ljust(w) for cell, w in zip(row, widths)]
        lines.append('  '.join(cells).rstrip())
    return '\n'.join(lines)


def render_validation(cfg: SearConfig, problems: list[str]) -> str:
    if problems:
        body = '\n'.join(f'  • {p}' for p in problems)
        return f'validation failed:\n{body}'
    lines = [
        '✓ Configuration is valid',
        f'✓ Default profile: {cfg.default_profile or "none"}',
        f'✓ Total profiles: {len(cfg.profiles)}',
    ]
    lines.extend(f'  - {name}' for name in sorted(cfg.profiles))
    return '\n'.join(lines)


class ListProfilesCLI(_BaseCommand):
    """List all configured profiles with their sizing and tool counts."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        print(render_profile_table(cfg))
        return 0


class ValidateConfigCLI(_BaseCommand):
    """Check the config file for missing profiles and invalid sizing."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        problems = validate_config(cfg)
        print(render_validation(cfg, problems))
        return 1 if problems else 0
