"""Exception hierarchy for the load harness.

Request-level errors (``TransportError``, ``ProtocolError``) are caught at the
iteration boundary and only counted; they never stop a virtual user or the run.
"""

from __future__ import annotations

from typing import Optional


class HarnessError(Exception):
    """Base class for all harness errors.

    Attributes:
        message: Human readable error description.
    """

    def __init__(self, message: str = "Load harness error") -> None:
        self.message = message
        super().__init__(self.message)


class TransportError(HarnessError):
    """A request did not produce a successful HTTP response.

    Covers refused connections, DNS failures, request timeouts and
    non-success status codes.
    """

    def __init__(self, message: str = "Request failed", status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProtocolError(HarnessError):
    """The HTTP call succeeded but the payload is unusable.

    Raised for non-JSON bodies, GraphQL ``errors`` without data, templates
    with wrongly typed fields and created templates that carry no ``id``.
    """

    def __init__(self, message: str = "Unexpected response payload") -> None:
        super().__init__(message)


class ReportWriteError(HarnessError):
    """Report artifacts could not be persisted."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Failed to write report {path}: {reason}")


class ProfileError(HarnessError, ValueError):
    """A load profile file is missing or invalid."""

    def __init__(self, message: str = "Invalid load profile") -> None:
        super().__init__(message)
