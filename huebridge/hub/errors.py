"""
Error taxonomy for hub communication.
"""

from typing import Optional


class HueError(Exception):
    """Base exception for hub errors."""

    code = "HUE_ERROR"

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.status = status
        self.retryable = retryable


class BadRequest(HueError):
    """Malformed request. Not retried."""
    code = "BAD_REQUEST"


class Unauthorized(HueError):
    """Missing or rejected application key."""
    code = "UNAUTHORIZED"


class NotFound(HueError):
    """Resource no longer exists on the hub."""
    code = "NOT_FOUND"


class Timeout(HueError):
    """Hub did not answer in time."""
    code = "TIMEOUT"

    def __init__(self, message: str = "Request timed out", status: Optional[int] = None):
        super().__init__(message, status=status, retryable=True)


class ServiceUnavailable(HueError):
    """Hub unreachable, refusing connections or overloaded."""
    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, status: Optional[int] = None, attempts: int = 1):
        super().__init__(message, status=status, retryable=True)
        self.attempts = attempts


class ServerError(HueError):
    """Hub-side fault, including errors embedded in a 2xx response."""
    code = "SERVER_ERROR"


class LinkButtonNotPressed(HueError):
    """Credential creation refused until the link button is pressed."""
    code = "LINK_BUTTON_NOT_PRESSED"

    def __init__(self, message: str = "Link button not pressed"):
        super().__init__(message, retryable=True)


def status_to_error(status: int, message: str) -> HueError:
    """Map a non-2xx HTTP status to an error."""
    if status == 400:
        return BadRequest(message, status=status)
    if status in (401, 403):
        return Unauthorized(message, status=status)
    if status == 404:
        return NotFound(message, status=status)
    if status in (429, 503):
        return ServiceUnavailable(message, status=status)
    return ServerError(message, status=status)
