"""
Error taxonomy shared by the engines and the HTTP layer
"""


class ScorebookError(Exception):
    """Base error. `status_code` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ScorebookError):
    """Malformed identifiers, out-of-range values, missing fields"""

    status_code = 400


class NotFoundError(ScorebookError):
    status_code = 404


class ForbiddenError(ScorebookError):
    status_code = 403


class ConflictError(ScorebookError):
    """Wrong match status, already-resolved approval, full over"""

    status_code = 409


StateError = ConflictError


class TransientStorageError(ScorebookError):
    """Lock contention or timeout that outlived the retry budget"""

    status_code = 503
