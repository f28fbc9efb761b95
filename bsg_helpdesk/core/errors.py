"""Domain errors raised by the service layer.

Routes never build error responses for these by hand; ``main`` registers a
single handler that maps each class to its HTTP status.
"""
from typing import List, Optional


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationFailed(ServiceError):
    status_code = 400


class PermissionDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409
