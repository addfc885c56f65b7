from typing import Any

from fastapi import status


class AppError(Exception):
    code: str = "APP_ERROR"
    message: str = "Application error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    details: Any | None = None

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        if details is not None:
            self.details = details

        super().__init__(self.message)


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    message = "Validation error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    code = "NOT_FOUND"
    message = "Resource not found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidCredentialsError(AppError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"
    status_code = status.HTTP_401_UNAUTHORIZED


class AccountInactiveError(AppError):
    code = "ACCOUNT_INACTIVE"
    message = "Account has been deactivated"
    status_code = status.HTTP_403_FORBIDDEN


class PermissionDeniedError(AppError):
    code = "PERMISSION_DENIED"
    message = "Insufficient privileges"
    status_code = status.HTTP_403_FORBIDDEN


class PolicyViolationError(AppError):
    code = "POLICY_VIOLATION"
    message = "Operation forbidden by role policy"
    status_code = status.HTTP_403_FORBIDDEN


class RequestAlreadyProcessedError(AppError):
    code = "REQUEST_ALREADY_PROCESSED"
    message = "Request already processed"
    status_code = status.HTTP_409_CONFLICT


class NetworkUnavailableError(AppError):
    """Transient failure reaching an external collaborator."""

    code = "NETWORK_UNAVAILABLE"
    message = "A network error occurred. Please check your connection."
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InitializationFailedError(AppError):
    """Raised when the session cannot be established at startup."""

    code = "INITIALIZATION_FAILED"
    message = "Failed to initialize authentication"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    message = "Internal server error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


ERROR_CODE_BY_STATUS: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: ValidationError.code,
    status.HTTP_401_UNAUTHORIZED: InvalidCredentialsError.code,
    status.HTTP_403_FORBIDDEN: PermissionDeniedError.code,
    status.HTTP_404_NOT_FOUND: NotFoundError.code,
    status.HTTP_409_CONFLICT: RequestAlreadyProcessedError.code,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ValidationError.code,
    status.HTTP_503_SERVICE_UNAVAILABLE: NetworkUnavailableError.code,
}


def error_payload(
    code: str,
    message: str,
    details: Any | None = None,
) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details}}


def resolve_error_code(status_code: int) -> str:
    if status_code in ERROR_CODE_BY_STATUS:
        return ERROR_CODE_BY_STATUS[status_code]
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return InternalError.code
    return "UNKNOWN_ERROR"
