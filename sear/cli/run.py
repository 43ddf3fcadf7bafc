"""The ``run`` command: boot a profile, prepare the guest, open a shell."""

from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg

from ..config import Profile, validate_profile
from ..errors import ConfigError, SearError, ValidationError
from ..guest import configure_guest_networking, run_tools
from ..host import require_host_commands
from ..vm import MicroVM
from ._common import _BaseCommand, _load_cfg, log


class RunCLI(_BaseCommand):
    """Run a microVM with the given profile and open an interactive shell."""

    profile = scfg.Value('', help='Profile name (default: default_profile).')
    mount = scfg.Value(
        True,
        isflag=True,
        help='Mount the current directory into the guest.',
    )
    ready_timeout = scfg.Value(
        60, help='Seconds to wait for SSH in the guest.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        name = str(args.profile or '').strip() or cfg.default_profile
        if not name:
            raise ConfigError(
                'No profile given and no default_profile configured.'
            )
        log.info('Starting profile: {}', name)
        profile = cfg.get_profile(name)
        problems = validate_profile(name, profile)
        if problems:
            raise ValidationError(problems)
        require_host_commands()

        vm = MicroVM(profile, ssh=cfg.ssh, share=cfg.share)
        try:
            vm.start()
            return run_session(
                vm,
                profile,
                mount_dir=Path.cwd() if args.mount else None,
                ready_timeout=float(args.ready_timeout),
            )
        finally:
            err = vm.stop()
            if err is not None:
                log.error('Error stopping VM: {}', err)


def run_session(
    vm: MicroVM,
    profile: Profile,
    *,
    mount_dir: Path | None,
    ready_timeout: float,
) -> int:
    remote = vm.remote_access()
    remote.wait_until_ready(timeout_s=ready_timeout)

    if configure_guest_networking(remote, vm.effective_network()):
        log.warning('Guest networking may be incomplete')

    failed = run_tools(remote, profile.tools)
    if failed:
        log.warning(
            '{} of {} tool commands failed', len(failed), len(profile.tools)
        )

    if mount_dir is not None:
        try:
            vm.mount_directory(remote, mount_dir)
        except SearError as ex:
            log.warning('Failed to mount current directory: {}', ex)
        else:
            log.info('Mounted current directory: {}', mount_dir)

    log.info('Starting interactive shell...')
    return remote.shell()
