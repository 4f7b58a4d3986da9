"""
Domain errors raised by the reputation services.

Services validate before mutating and raise one of these; the API layer
maps each to its HTTP status code.
"""


class ReputationError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ReputationError):
    status_code = 404


class BadRequestError(ReputationError):
    status_code = 400


class ForbiddenError(ReputationError):
    status_code = 403


class ConflictError(ReputationError):
    status_code = 409
