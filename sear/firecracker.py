"""Minimal Firecracker control-socket client used before the guest boots."""

from __future__ import annotations

import os
from typing import Any, Optional

import httpx
from loguru import logger

from .errors import ControlSocketMissingError, HypervisorError
from .util import expand_home

log = logger

REQUEST_TIMEOUT_S = 5.0


class FirecrackerClient:
    """Issue PUT configuration calls to a running Firecracker process.

    Every call is synchronous and either returns once Firecracker answers
    with a 2xx status or raises :class:`HypervisorError`.

    Args:
        socket_path: unix socket Firecracker was started with
            (``--api-sock``). It must already exist.
        transport: optional httpx transport; the default talks to
            ``socket_path``.
        timeout: per-request timeout in seconds.
    """

    def __init__(
        self,
        socket_path: str,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT_S,
    ):
        if not os.path.exists(socket_path):
            raise ControlSocketMissingError(
                f'Firecracker socket not found: {socket_path}'
            )
        self.socket_path = socket_path
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        transport = self._transport or httpx.HTTPTransport(uds=self.socket_path)
        return httpx.Client(
            transport=transport,
            base_url='http://localhost',
            timeout=self.timeout,
            headers={'Accept': 'application/json'},
        )

    def _put(self, endpoint: str, payload: dict[str, Any]) -> None:
        log.debug('PUT {} {}', endpoint, payload)
        try:
            with self._client() as client:
                response = client.put(endpoint, json=payload)
        except httpx.HTTPError as ex:
            raise HypervisorError(endpoint, detail=str(ex)) from ex
        if not response.is_success:
            detail = ''
            try:
                detail = str(response.json().get('fault_message', ''))
            except (ValueError, AttributeError):
                detail = response.text.strip()
            raise HypervisorError(endpoint, response.status_code, detail)

    def configure_logger(self, log_path: str, level: str = 'Debug') -> None:
        log.info('Configuring Firecracker logger: {}', log_path)
        self._put(
            '/logger',
            {
                'log_path': log_path,
                'level': level,
                'show_level': True,
                'show_log_origin': True,
            },
        )

    def set_boot_source(self, kernel_path: str, boot_args: str) -> None:
        log.info('Setting boot source: {}', kernel_path)
        self._put(
            '/boot-source',
            {
                'kernel_image_path': expand_home(kernel_path),
                'boot_args': boot_args,
            },
        )

    def attach_drive(
        self,
        drive_id: str,
        path_on_host: str,
        *,
        is_root_device: bool,
        is_read_only: bool,
    ) -> None:
        log.info('Attaching drive {}: {}', drive_id, path_on_host)
        self._put(
            f'/drives/{drive_id}',
            {
                'drive_id': drive_id,
                'path_on_host': expand_home(path_on_host),
                'is_root_device': is_root_device,
                'is_read_only': is_read_only,
            },
        )

    def attach_network(
        self, iface_id: str, guest_mac: str, host_dev_name: str
    ) -> None:
        log.info(
            'Attaching network interface {} on {}', iface_id, host_dev_name
        )
        self._put(
            f'/network-interfaces/{iface_id}',
            {
                'iface_id': iface_id,
                'guest_mac': guest_mac,
                'host_dev_name': host_dev_name,
            },
        )

    def start_instance(self) -> None:
        log.info('Starting Firecracker instance')
        self._put('/actions', {'action_type': 'InstanceStart'})
