"""Tagged API error raised by services and rendered once at the HTTP boundary."""

from __future__ import annotations

import enum
from typing import Dict, Optional


class ErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UPSTREAM_FAILURE = "upstream_failure"


STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NO_ACTIVE_SUBSCRIPTION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.UPSTREAM_FAILURE: 502,
}


class ApiError(Exception):
    def __init__(self, kind: ErrorKind, message: str, *, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.fields = fields or {}

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        error = {"kind": self.kind.value, "message": self.message}
        if self.fields:
            error["fields"] = dict(self.fields)
        return {"success": False, "error": error}

    def __repr__(self) -> str:
        return f"ApiError({self.kind.value!r}, {self.message!r})"


def unauthenticated(message: str = "Authentication required") -> ApiError:
    return ApiError(ErrorKind.UNAUTHENTICATED, message)


def forbidden(message: str = "Forbidden") -> ApiError:
    return ApiError(ErrorKind.FORBIDDEN, message)


def not_found(message: str) -> ApiError:
    return ApiError(ErrorKind.NOT_FOUND, message)


def conflict(message: str) -> ApiError:
    return ApiError(ErrorKind.CONFLICT, message)


def validation(message: str, fields: Optional[Dict[str, str]] = None) -> ApiError:
    return ApiError(ErrorKind.VALIDATION, message, fields=fields)
