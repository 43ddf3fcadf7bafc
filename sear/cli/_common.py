from __future__ import annotations

import scriptconfig as scfg
from loguru import logger

from .. import config as config_mod
from ..config import SearConfig

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None,
        short_alias=['c'],
        help='Path to config TOML (default: ~/.config/sear/config.toml, then ./config.toml).',
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _load_cfg(config_path: str | None) -> SearConfig:
    return config_mod.load(config_path)
