"""
core/exceptions.py

Domain errors raised below the route layer. Each carries the HTTP status it
maps to, so services never raise HTTPException and the handlers in main.py
render them as `{"detail": ...}`. `ValidationFailed` also carries an
`errors` list in the same `{field, message}` shape as request-body
validation failures.
"""

from typing import Dict, List

from fastapi import status


class PBLError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str = None, status_code: int = None):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class ValidationFailed(PBLError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"

    def __init__(self, detail: str = None, errors: List[Dict[str, str]] = None, field: str = ""):
        super().__init__(detail)
        self.errors = errors or [{"field": field, "message": self.detail}]


class AuthenticationFailed(PBLError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"


class PermissionDenied(PBLError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied"


class NotFound(PBLError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(PBLError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class RateLimited(PBLError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests"


class ConfigurationError(PBLError):
    default_detail = "Server is misconfigured"


class IntegrationError(PBLError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service error"
