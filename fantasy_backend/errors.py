"""
Domain errors raised by the database layer and mapped to HTTP responses in app.py.
"""

from __future__ import annotations


class FantasyError(Exception):
    """Base class for errors that carry a user-facing message."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(FantasyError):
    status_code = 400


class PermissionDeniedError(FantasyError):
    status_code = 403


class NotFoundError(FantasyError):
    status_code = 404


class ConflictError(FantasyError):
    status_code = 409


class InsufficientPointsError(ConflictError):
    def __init__(self, message: str = "Insufficient points"):
        super().__init__(message)


class TeamValidationError(InvalidRequestError):
    """Raised when a competition team breaks the roster rules."""

    def __init__(self, problems: list[str]):
        super().__init__("Invalid team selection: " + "; ".join(problems))
        self.problems = problems
