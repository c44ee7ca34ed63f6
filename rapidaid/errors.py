"""
errors.py
=========
Typed failures raised by the dispatch core.
The HTTP layer (main.py) maps each one to a status code.
"""


class DispatchError(Exception):
    """Base class for every error the dispatch core raises on purpose."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DispatchError):
    """Referenced emergency, driver or user does not exist."""
    status_code = 404


class InvalidStateError(DispatchError):
    """The record's current status forbids the requested operation."""
    status_code = 409


class UnauthorizedError(DispatchError):
    """Caller does not own the record it is trying to change."""
    status_code = 403


class UpstreamUnavailableError(DispatchError):
    """The record store could not be reached."""
    status_code = 503
