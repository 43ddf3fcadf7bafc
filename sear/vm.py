"""MicroVM lifecycle: host network, Firecracker configuration, and teardown."""

from __future__ import annotations

import enum
import ipaddress
import shlex
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .config import (
    NetworkConfig,
    Profile,
    ShareConfig,
    SSHConfig,
    resolve_network,
)
from .errors import SearError, VMStartError
from .firecracker import FirecrackerClient
from .net import CommandRunner, NetworkManager
from .remote import RemoteAccess
from .runtime import control_socket_path, resolve_ssh_key
from .util import CmdError

log = logger

FIRECRACKER_LOG_PATH = '/tmp/sear-firecracker.log'
FIRECRACKER_LOG_LEVEL = 'Debug'
ROOTFS_DRIVE_ID = 'rootfs'
NET_IFACE_ID = 'net1'
SSH_PORT = 22

ClientFactory = Callable[[str], FirecrackerClient]


class VMState(enum.Enum):
    CREATED = 'created'
    NETWORK_READY = 'network-ready'
    HYPERVISOR_CONFIGURED = 'hypervisor-configured'
    RUNNING = 'running'
    STOPPED = 'stopped'
    FAILED = 'failed'


def mac_from_gateway(gateway_ip: str) -> str:
    """Derive the guest MAC from the gateway of its /30 link.

    The guest sits one address above the gateway and its init script looks
    for an interface whose MAC encodes that address after a ``06:00``
    prefix.

    Example:
        >>> mac_from_gateway('172.16.0.1')
        '06:00:AC:10:00:02'
        >>> mac_from_gateway('10.0.0.5')
        '06:00:0A:00:00:06'
    """
    gateway = ipaddress.IPv4Address(gateway_ip.strip())
    guest = (int(gateway) + 1) & 0xFFFFFFFF
    octets = guest.to_bytes(4, 'big')
    return '06:00:' + ':'.join(f'{b:02X}' for b in octets)


class MicroVM:
    """One Firecracker guest and the host resources it needs.

    Construction has no side effects. :meth:`start` brings host networking
    and the guest up and undoes the networking itself if any fatal step
    fails. :meth:`stop` is always safe to call, any number of times.
    """

    def __init__(
        self,
        profile: Profile,
        *,
        ssh: Optional[SSHConfig] = None,
        share: Optional[ShareConfig] = None,
        runner: Optional[CommandRunner] = None,
        client_factory: Optional[ClientFactory] = None,
        socket_path: Optional[str] = None,
    ):
        self.profile = profile
        self.ssh = ssh or SSHConfig()
        self.share = share or ShareConfig()
        self.state = VMState.CREATED
        self.network: Optional[NetworkConfig] = None
        self.net_manager: Optional[NetworkManager] = None
        self.client: Optional[FirecrackerClient] = None
        self._runner = runner
        self._client_factory = client_factory or FirecrackerClient
        self._socket_path = socket_path

    def effective_network(self) -> NetworkConfig:
        """Network settings for this VM, resolved once and then fixed."""
        if self.network is None:
            self.network = resolve_network(self.profile.network)
        return self.network

    def start(self) -> None:
        log.info('Starting VM...')
        if self.state is VMState.RUNNING:
            raise SearError('VM is already running; stop it first')
        # A fresh start re-resolves; an override cannot change mid-life.
        self.network = None
        net = self.effective_network()
        try:
            mac = mac_from_gateway(net.gateway_ip)
        except ValueError as ex:
            self.state = VMState.FAILED
            raise VMStartError('derive guest MAC', ex) from ex

        self.net_manager = NetworkManager(
            net.tap_device,
            net.tap_ip,
            host_interface=net.host_interface,
            runner=self._runner,
        )
        step = 'setup network'
        try:
            self.net_manager.setup()
            self.state = VMState.NETWORK_READY

            step = 'connect to Firecracker'
            socket_path = self._socket_path or control_socket_path()
            client = self._client_factory(socket_path)
            self.client = client

            try:
                client.configure_logger(
                    FIRECRACKER_LOG_PATH, FIRECRACKER_LOG_LEVEL
                )
            except SearError as ex:
                log.warning('Failed to configure logger: {}', ex)

            vm = self.profile.vm
            step = 'set boot source'
            client.set_boot_source(vm.kernel, vm.effective_kernel_args)
            step = 'attach rootfs'
            client.attach_drive(
                ROOTFS_DRIVE_ID,
                vm.rootfs,
                is_root_device=True,
                is_read_only=False,
            )
            step = 'attach network'
            client.attach_network(NET_IFACE_ID, mac, net.tap_device)
            self.state = VMState.HYPERVISOR_CONFIGURED

            step = 'start instance'
            client.start_instance()
        except SearError as ex:
            self.state = VMState.FAILED
            log.error('VM start failed during {}: {}', step, ex)
            self._teardown_network()
            raise VMStartError(step, ex) from ex
        except BaseException:
            self.state = VMState.FAILED
            log.error('VM start aborted during {}', step)
            self._teardown_network()
            raise
        self.state = VMState.RUNNING
        log.info('VM started successfully')

    def _teardown_network(self) -> Optional[str]:
        if self.net_manager is None:
            return None
        return self.net_manager.teardown()

    def stop(self) -> Optional[str]:
        """Release host networking; returns the last teardown error, if any."""
        log.info('Stopping VM...')
        err = self._teardown_network()
        if err is not None:
            log.warning('Failed to teardown network: {}', err)
        self.state = VMState.STOPPED
        return err

    def remote_access(self) -> RemoteAccess:
        net = self.effective_network()
        return RemoteAccess(
            host=net.guest_ip,
            port=SSH_PORT,
            user=self.ssh.username or 'root',
            key_path=resolve_ssh_key(self.ssh.key_path),
        )

    def execute_command(self, command: str) -> None:
        self.remote_access().execute(command)

    def mount_directory(
        self, remote: RemoteAccess, host_path: str | Path
    ) -> None:
        """Expose ``host_path`` at the guest mount point.

        Tries a virtiofs mount of the share tag first. Only when that fails,
        and only when bind fallback is enabled, bind-mounts the host path
        inside the guest, which is meaningful only when the guest sees the
        host filesystem.
        """
        abs_path = str(Path(host_path).expanduser().absolute())
        log.info('Mounting directory: {}', abs_path)
        mount_point = self.share.guest_dst
        try:
            remote.execute(f'mkdir -p {shlex.quote(mount_point)}')
        except CmdError as ex:
            raise SearError(f'failed to create mount point: {ex}') from ex

        virtiofs_cmd = (
            'mount -t virtiofs -o allow_other,default_permissions '
            f'{shlex.quote(self.share.tag)} {shlex.quote(mount_point)}'
        )
        try:
            remote.execute(virtiofs_cmd)
            return
        except CmdError as ex:
            if not self.share.bind_fallback:
                raise SearError(f'failed to mount directory: {ex}') from ex
            log.warning('virtiofs mount failed, trying bind mount: {}', ex)

        bind_cmd = (
            f'mount --bind {shlex.quote(abs_path)} {shlex.quote(mount_point)}'
        )
        try:
            remote.execute(bind_cmd)
        except CmdError as ex:
            raise SearError(f'failed to mount directory: {ex}') from ex
