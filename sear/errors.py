"""Project-specific exception types."""

from __future__ import annotations

from typing import Optional

from .util import CmdResult


class SearError(RuntimeError):
    """Base error for domain-level sear failures."""


class ConfigError(SearError):
    """Raised when the config file is missing, unreadable, or inconsistent."""


class ValidationError(ConfigError):
    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        body = '\n'.join(f'  • {p}' for p in self.problems)
        super().__init__(f'validation failed:\n{body}')


class ControlSocketMissingError(SearError):
    """Raised when the hypervisor control socket does not exist."""


class HypervisorError(SearError):
    """A control-socket request was rejected or could not be delivered."""

    def __init__(
        self,
        endpoint: str,
        status_code: Optional[int] = None,
        detail: str = '',
    ):
        self.endpoint = endpoint
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            msg = f'request to {endpoint} failed: {detail}'
        else:
            msg = f'API request {endpoint} failed with status: {status_code}'
            if detail:
                msg = f'{msg} ({detail})'
        super().__init__(msg)


class NetworkSetupError(SearError):
    """A fatal host network setup step failed."""

    def __init__(self, step: str, result: Optional[CmdResult] = None):
        self.step = step
        self.result = result
        msg = f'failed to {step}'
        if result is not None:
            stderr = result.stderr.strip()
            msg = f'{msg} (code={result.code})'
            if stderr:
                msg = f'{msg}: {stderr}'
        super().__init__(msg)


class VMStartError(SearError):
    """Raised by MicroVM.start with the name of the step that failed."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        super().__init__(f'failed to {step}: {cause}')
