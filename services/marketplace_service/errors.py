"""
Error taxonomy for marketplace operations.

Lifecycle code raises MarketplaceError with an explicit kind; the app-level
handlers in main.py turn the kind into a status code and a {"error": ...} body.
"""
from fastapi import status
import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    INTERNAL = "internal"


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class MarketplaceError(Exception):
    def __init__(self, kind: ErrorKind, message: str, **context):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.context = context

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_body(self) -> dict:
        body = {"error": self.message}
        body.update(self.context)
        return body


def not_found(message: str, **context) -> MarketplaceError:
    return MarketplaceError(ErrorKind.NOT_FOUND, message, **context)


def forbidden(message: str, **context) -> MarketplaceError:
    return MarketplaceError(ErrorKind.FORBIDDEN, message, **context)


def invalid(message: str, **context) -> MarketplaceError:
    return MarketplaceError(ErrorKind.VALIDATION, message, **context)


def invalid_state(message: str, **context) -> MarketplaceError:
    return MarketplaceError(ErrorKind.INVALID_STATE, message, **context)


def conflict(message: str, **context) -> MarketplaceError:
    return MarketplaceError(ErrorKind.CONFLICT, message, **context)
