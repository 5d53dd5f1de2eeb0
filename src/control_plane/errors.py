from __future__ import annotations


class ErrorCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"

    TENANT_LIMIT_EXCEEDED = "TENANT_LIMIT_EXCEEDED"
    DOMAIN_LIMIT_EXCEEDED = "DOMAIN_LIMIT_EXCEEDED"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class AppError(Exception):
    """Base error for expected failures."""

    def __init__(
        self,
        message: str,
        *,
        code: str = ErrorCode.VALIDATION_ERROR,
        http_status: int = 400,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status


class AuthError(AppError):
    def __init__(self, message: str = "unauthorized", *, code: str = ErrorCode.UNAUTHORIZED):
        super().__init__(message, code=code, http_status=401)


class TokenInvalidError(AuthError):
    def __init__(self, message: str = "invalid token"):
        super().__init__(message, code=ErrorCode.TOKEN_INVALID)


class TokenExpiredError(AuthError):
    def __init__(self, message: str = "token expired"):
        super().__init__(message, code=ErrorCode.TOKEN_EXPIRED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "forbidden"):
        super().__init__(message, code=ErrorCode.FORBIDDEN, http_status=403)


class NotFoundError(AppError):
    def __init__(self, message: str = "not found"):
        super().__init__(message, code=ErrorCode.RESOURCE_NOT_FOUND, http_status=404)


class ConflictError(AppError):
    def __init__(self, message: str = "resource already exists"):
        super().__init__(message, code=ErrorCode.RESOURCE_ALREADY_EXISTS, http_status=409)


class LimitExceededError(AppError):
    def __init__(self, message: str, *, code: str):
        super().__init__(message, code=code, http_status=400)


class InternalError(AppError):
    """A failure of a collaborator (store, signer), never caused by the caller's input."""

    def __init__(self, message: str = "internal error"):
        super().__init__(message, code=ErrorCode.INTERNAL_ERROR, http_status=500)


class AccessCheckError(InternalError):
    def __init__(self, message: str = "tenant access check failed"):
        super().__init__(message)
