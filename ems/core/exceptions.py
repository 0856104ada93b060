import enum
from typing import Any, Dict, Optional


class ErrorCode(str, enum.Enum):
    BUSINESS_ERROR = "BUSINESS_ERROR"
    AUTH_FAILED = "AUTH_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    BALANCE_NOT_FOUND = "BALANCE_NOT_FOUND"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    ALREADY_PAID = "ALREADY_PAID"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = ErrorCode.BUSINESS_ERROR.value,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code=ErrorCode.AUTH_FAILED.value
        )


class UnauthorizedError(AppException):
    """Caller's role lacks the capability required for the operation."""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=403,
            error_code=ErrorCode.UNAUTHORIZED.value
        )


class NotFoundError(AppException):
    def __init__(self, message: str = "Record not found", error_code: str = ErrorCode.NOT_FOUND.value):
        super().__init__(
            message=message,
            status_code=404,
            error_code=error_code
        )


class EmployeeNotFoundError(NotFoundError):
    def __init__(self, message: str = "Employee not found"):
        super().__init__(message=message, error_code=ErrorCode.EMPLOYEE_NOT_FOUND.value)


class BalanceNotFoundError(NotFoundError):
    def __init__(self, message: str = "Leave balance not found"):
        super().__init__(message=message, error_code=ErrorCode.BALANCE_NOT_FOUND.value)


class InsufficientBalanceError(AppException):
    def __init__(self, leave_type: str, available: float):
        self.leave_type = leave_type
        self.available = available
        super().__init__(
            message=f"Insufficient {leave_type} leave balance. Available: {available:g} days",
            status_code=400,
            error_code=ErrorCode.INSUFFICIENT_BALANCE.value,
            details={"leave_type": leave_type, "available": available}
        )


class AlreadyProcessedError(AppException):
    def __init__(self, message: str = "Leave request already processed"):
        super().__init__(
            message=message,
            status_code=409,
            error_code=ErrorCode.ALREADY_PROCESSED.value
        )


class AlreadyPaidError(AppException):
    def __init__(self, message: str = "Salary already paid for this month"):
        super().__init__(
            message=message,
            status_code=409,
            error_code=ErrorCode.ALREADY_PAID.value
        )


class InvalidTransitionError(AppException):
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=409,
            error_code=ErrorCode.INVALID_TRANSITION.value
        )


class ValidationError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code=ErrorCode.VALIDATION_ERROR.value,
            details=details
        )


class ConflictError(AppException):
    """A concurrent write touched the same record; the whole unit of work was rolled back."""
    def __init__(self, message: str = "Concurrent update detected, please retry"):
        super().__init__(
            message=message,
            status_code=409,
            error_code=ErrorCode.CONFLICT.value
        )
