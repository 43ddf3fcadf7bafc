"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ._common import _load_cfg, log
from .profiles import ListProfilesCLI, ValidateConfigCLI
from .run import RunCLI


class SearModalCLI(scfg.ModalCLI):
    """Spawn Firecracker microVMs from configured profiles."""

    run = RunCLI
    list_profiles = ListProfilesCLI
    validate_config = ValidateConfigCLI


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    config_value = _config_from_argv(argv)
    try:
        verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1

    _setup_logging(_count_verbose(argv), verbosity)

    try:
        rc = SearModalCLI.main(argv=argv, _noexit=True)
    except KeyboardInterrupt:
        print('Interrupted', file=sys.stderr)
        sys.exit(130)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Fatal error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _config_from_argv(argv: list[str]) -> str | None:
    for flag in ('--config', '-c'):
        if flag in argv:
            try:
                return argv[argv.index(flag) + 1]
            except IndexError:
                return None
    return None


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Normalize hyphenated spellings and positional profile names.

    Options given before the command name (``sear -v run dev``) are moved
    after it, where the subcommand parser expects them.
    """
    idx = 0
    while idx < len(argv) and argv[idx].startswith('-'):
        idx += 2 if argv[idx] in ('-c', '--config') else 1
    if idx >= len(argv):
        return argv
    lead, head, rest = argv[:idx], argv[idx], argv[idx + 1 :]
    if head in {'list-profiles', 'list', 'ls'}:
        return ['list_profiles', *lead, *rest]
    if head in {'validate-config', 'validate'}:
        return ['validate_config', *lead, *rest]
    if head == 'run' and rest and not rest[0].startswith('-'):
        return ['run', *lead, '--profile', rest[0], *rest[1:]]
    return [head, *lead, *rest]


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
