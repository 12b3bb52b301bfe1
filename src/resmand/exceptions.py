"""Custom exception hierarchy for resmand."""

from __future__ import annotations


class ResmandError(Exception):
    """Base exception for all resmand errors."""


class ResmandConfigError(ResmandError):
    """Invalid or missing configuration."""


class ResourceLoadError(ResmandError):
    """A ``Load``/``Merge`` call could not produce config text.

    The store is never touched when this is raised.
    """

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class FileReadError(ResourceLoadError):
    """Config file missing or unreadable."""


class PreprocessExecError(ResourceLoadError):
    """Preprocessor failed to start or exited abnormally."""

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        command: tuple[str, ...] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, path=path)


class EncodingError(ResourceLoadError):
    """Config text (file or preprocessor output) is not valid UTF-8."""


class KeyRejected(ResmandError):
    """A parsed line carried an invalid resource key.

    Only used to describe the rejection in logs; the parser skips the line
    and carries on.
    """

    def __init__(self, key: str, *, line_number: int | None = None) -> None:
        self.key = key
        self.line_number = line_number
        where = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"{key!r} is not a valid key{where}")


class ResmandTransportError(ResmandError):
    """Bus-level failure (connection refused, non-JSON reply, bad status)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        method: str = "",
    ) -> None:
        self.status_code = status_code
        self.method = method
        super().__init__(message)


class ResmandRemoteError(ResmandTransportError):
    """The daemon answered a call with an error body.

    ``error_type`` is the exception class name reported by the daemon
    (e.g. ``"FileReadError"``) so callers can tell failures apart.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: str = "",
        status_code: int | None = None,
        method: str = "",
    ) -> None:
        self.error_type = error_type
        super().__init__(message, status_code=status_code, method=method)
