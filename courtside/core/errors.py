from typing import List, Optional


class TournamentError(Exception):
    """Base class for failures reported back to the caller as a structured result."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(TournamentError):
    status_code = 400


class InvalidBracketSize(ValidationError):
    pass


class FormatNotSupported(ValidationError):
    pass


class NotFoundError(TournamentError):
    status_code = 404


class PermissionDeniedError(TournamentError):
    status_code = 403


class ConflictError(TournamentError):
    status_code = 409


class DataIntegrityError(TournamentError):
    status_code = 500
