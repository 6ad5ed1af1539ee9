"""Error taxonomy for gateway failures and user-facing error descriptions."""

from enum import Enum, StrEnum

from pydantic import BaseModel


class ErrorKind(StrEnum):
    """Tagged failure classes produced by the HTTP gateway."""

    AUTH_EXPIRED = "auth_expired"
    AUTH_UNRECOVERABLE = "auth_unrecoverable"
    CSRF_INVALID = "csrf_invalid"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    REJECTED = "rejected"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Session errors
    ERR_SESSION_EXPIRED = "ERR_SESSION_EXPIRED"
    ERR_CSRF_INVALID = "ERR_CSRF_INVALID"

    # Transport errors
    ERR_RATE_LIMIT_EXCEEDED = "ERR_RATE_LIMIT_EXCEEDED"
    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"

    # Server rejections
    ERR_REQUEST_REJECTED = "ERR_REQUEST_REJECTED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_SERVER_ERROR = "ERR_SERVER_ERROR"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


class GatewayError(Exception):
    """Terminal failure of a gateway request after local recovery is exhausted."""

    def __init__(
        self,
        kind: ErrorKind,
        *,
        status_code: int | None = None,
        detail: str = "",
        user_message: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        self.detail = detail
        self.user_message = user_message
        self.retry_after = retry_after
        label = f"{kind.value} ({status_code})" if status_code is not None else kind.value
        super().__init__(f"{label}: {detail}" if detail else label)


HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_SERVER_ERROR = 500


def describe_error(error: GatewayError) -> ErrorResponse:  # noqa: PLR0911
    """Map a gateway error to a structured response with a recovery suggestion.

    Args:
        error: The terminal gateway error

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    match error.kind:
        case ErrorKind.AUTH_EXPIRED | ErrorKind.AUTH_UNRECOVERABLE:
            return ErrorResponse(
                code=ErrorCode.ERR_SESSION_EXPIRED,
                message="Your session has expired.",
                suggestion="Please log in again.",
                severity=ErrorSeverity.HIGH,
            )
        case ErrorKind.CSRF_INVALID:
            return ErrorResponse(
                code=ErrorCode.ERR_CSRF_INVALID,
                message="The request could not be verified.",
                suggestion="Reload and try again.",
                severity=ErrorSeverity.MEDIUM,
            )
        case ErrorKind.RATE_LIMITED:
            return ErrorResponse(
                code=ErrorCode.ERR_RATE_LIMIT_EXCEEDED,
                message=error.user_message or "Too many requests.",
                suggestion="Please wait a moment and try again.",
                severity=ErrorSeverity.MEDIUM,
            )
        case ErrorKind.NETWORK:
            return ErrorResponse(
                code=ErrorCode.ERR_NETWORK_ERROR,
                message="Network error occurred.",
                suggestion="Please check your connection and try again.",
                severity=ErrorSeverity.MEDIUM,
            )
        case ErrorKind.REJECTED:
            if error.status_code == HTTP_NOT_FOUND:
                return ErrorResponse(
                    code=ErrorCode.ERR_NOT_FOUND,
                    message="That item no longer exists.",
                    suggestion="Refresh to see the latest changes.",
                    severity=ErrorSeverity.LOW,
                )
            if error.status_code == HTTP_FORBIDDEN:
                return ErrorResponse(
                    code=ErrorCode.ERR_PERMISSION_DENIED,
                    message="You don't have permission for this action.",
                    suggestion="Ask the list owner for editor access.",
                    severity=ErrorSeverity.MEDIUM,
                )
            if error.status_code is not None and error.status_code >= HTTP_SERVER_ERROR:
                return ErrorResponse(
                    code=ErrorCode.ERR_SERVER_ERROR,
                    message="The server ran into a problem.",
                    suggestion="Please try again later.",
                    severity=ErrorSeverity.HIGH,
                )
            return ErrorResponse(
                code=ErrorCode.ERR_REQUEST_REJECTED,
                message=error.detail or "The request was rejected.",
                suggestion="Check your input and try again.",
                severity=ErrorSeverity.LOW,
            )
