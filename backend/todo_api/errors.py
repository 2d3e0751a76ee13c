from __future__ import annotations


class messages:
    """One wording per failure kind, shared by services and the HTTP layer."""

    # auth
    INVALID_CREDENTIALS = "Invalid credentials provided"
    EMAIL_NOT_VERIFIED = "Email verification required"
    ACCOUNT_DEACTIVATED = "Account access restricted"
    AUTHENTICATION_REQUIRED = "Authentication required"
    INVALID_TOKEN = "Invalid or expired token"

    # registration
    EMAIL_EXISTS = "An account with this email already exists"
    WEAK_PASSWORD = "Password does not meet security requirements"

    # verification tokens
    INVALID_VERIFICATION_TOKEN = "Invalid or expired verification link"
    VERIFICATION_TOKEN_ALREADY_USED = "Verification link already used"
    TOKEN_GENERATION_FAILED = "Unable to complete authentication"

    # infra
    HASHING_FAILED = "Authentication service temporarily unavailable"
    INTERNAL_ERROR = "An unexpected error occurred"
    DATABASE_ERROR = "Database operation failed"
    VALIDATION_FAILED = "Validation failed"
    TOO_MANY_REQUESTS = "Too many requests, please try again later"

    # resources
    USER_NOT_FOUND = "User account not found"
    TODO_NOT_FOUND = "Todo not found"


class AppError(Exception):
    """Known failure that crosses the HTTP boundary with its own message."""

    status_code = 500
    error = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(AppError):
    status_code = 400
    error = "BAD_REQUEST"


class UnauthorizedError(AppError):
    status_code = 401
    error = "UNAUTHORIZED"


class NotFoundError(AppError):
    status_code = 404
    error = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    error = "CONFLICT"


class InternalError(AppError):
    status_code = 500
    error = "INTERNAL_SERVER_ERROR"
