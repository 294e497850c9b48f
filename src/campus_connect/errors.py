"""Domain exceptions raised by the service layer.

Routers do not catch these; the global error handlers map them to
HTTP status codes (see ``campus_connect.middleware.error_handler``).
"""

from __future__ import annotations


class CampusConnectError(Exception):
    """Base class for expected domain failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(CampusConnectError):
    """A referenced user, badge, session or board does not exist."""

    status_code = 404


class ValidationError(CampusConnectError):
    """Input is well-formed but not acceptable (unknown kind, bad transition)."""

    status_code = 400


class ForbiddenError(CampusConnectError):
    """The caller is not a participant of the resource."""

    status_code = 403


class ConcurrentUpdateError(CampusConnectError):
    """An optimistic compare-and-set kept losing to concurrent writers."""

    status_code = 409
