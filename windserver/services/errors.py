from __future__ import annotations

import socket
from typing import Iterable

import requests


class PipelineError(RuntimeError):
    """Base class for failures that abort an update cycle."""


class TransportError(PipelineError):
    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ConversionFailed(PipelineError):
    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class IncompleteBuild(PipelineError):
    pass


class SwapFailed(PipelineError):
    pass


class PipelineBusy(PipelineError):
    pass


def _iter_exception_chain(exc: BaseException) -> Iterable[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        next_exc = current.__cause__ or current.__context__
        current = next_exc if isinstance(next_exc, BaseException) else None


def http_status_from_exception(exc: BaseException) -> int | None:
    for candidate in _iter_exception_chain(exc):
        response = getattr(candidate, "response", None)
        status_code = getattr(response, "status_code", None)
        if isinstance(status_code, int):
            return status_code
        status = getattr(candidate, "status", None)
        if isinstance(status, int):
            return status
    return None


def is_timeout(exc: BaseException) -> bool:
    timeout_types: tuple[type[BaseException], ...] = (
        TimeoutError,
        socket.timeout,
        requests.exceptions.Timeout,
    )
    return any(isinstance(candidate, timeout_types) for candidate in _iter_exception_chain(exc))


def transport_error_from(exc: BaseException, url: str) -> TransportError:
    """Map a requests/socket failure onto a TransportError that names the URL."""
    status_code = http_status_from_exception(exc)
    if status_code is not None:
        reason = getattr(getattr(exc, "response", None), "reason", None)
        if reason:
            message = f"HTTP {status_code}: {reason} for {url}"
        else:
            message = f"HTTP {status_code} for {url}"
    elif is_timeout(exc):
        message = f"Timed out fetching {url}: {exc}"
    else:
        message = f"Transport error fetching {url}: {exc}"
    return TransportError(message, url=url, status_code=status_code)
