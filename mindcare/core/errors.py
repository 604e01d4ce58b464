"""Service-level errors surfaced to API callers.

Each error is an ``HTTPException`` so it can be raised from the service layer
and reach the client unchanged, carrying a human-readable ``detail``.
"""

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(status_code=type(self).status_code, detail=detail)


class AuthorizationError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
