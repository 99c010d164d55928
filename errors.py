"""
Error types shared by every exporter service.

Each failure the exporter can run into falls into one of a small set of
kinds. Every error keeps the raw input that caused it, so a log line is
enough to figure out which server variant or version produced output we
didn't expect.
"""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(ExporterError):
    """A required setting is missing or invalid. Fatal at startup."""

    def __init__(self, setting: str, message: str):
        self.setting = setting
        super().__init__(message)


class TransportError(ExporterError):
    """The RCON connection or an HTTP request failed on the wire."""

    def __init__(self, operation: str, cause: object):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class CommandTimeoutError(ExporterError):
    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(
            f"Timed out waiting for a response to \"{command}\" after {timeout}s"
        )


class ParseError(ExporterError):
    """
    Text or file content didn't match the expected grammar.

    Attributes:
        field: Name of the value that failed (e.g. "tps", "version", a stat key)
        raw: The raw text or value that failed to parse
        count: Observed number of fields, when a field count was the problem
    """

    def __init__(self, field: str, raw: object, count: Optional[int] = None, reason: str = ""):
        self.field = field
        self.raw = raw
        self.count = count
        message = f"Failed to parse {field} from {raw!r}"
        if count is not None:
            message += f" (got {count} values)"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class NotFoundError(ExporterError):
    def __init__(self, what: str, where: str):
        self.what = what
        self.where = where
        super().__init__(f"Could not find {what}: {where}")


class LookupFailedError(ExporterError):
    """The name lookup answered with an unexpected HTTP status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"HTTP request returned status code {status_code}, expected 200. "
            f"Response body: {body}"
        )
