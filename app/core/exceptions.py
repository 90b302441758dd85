"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Bad Request (400) ---


class InvalidRequestError(AppException):
    """Request is well-formed but not acceptable."""

    def __init__(
        self, message: str = "Invalid request", code: str = "INVALID_REQUEST"
    ) -> None:
        super().__init__(message=message, code=code, status_code=400)


class SelfChatError(InvalidRequestError):
    """Listing owner tried to open a chat with themselves."""

    def __init__(self) -> None:
        super().__init__(message="You cannot chat with yourself", code="SELF_CHAT")


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


class TokenExpiredError(AppException):
    """Token has expired."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has expired",
            code="TOKEN_EXPIRED",
            status_code=401,
        )


class TokenBlacklistedError(AppException):
    """Token has been revoked."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has been revoked",
            code="TOKEN_BLACKLISTED",
            status_code=401,
        )


class InvalidTokenError(AppException):
    """Token is invalid."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid token",
            code="INVALID_TOKEN",
            status_code=401,
        )


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        code: str = "AUTHORIZATION_ERROR",
    ) -> None:
        super().__init__(message=message, code=code, status_code=403)


class NotParticipantError(AuthorizationError):
    """User is not one of the two room participants."""

    def __init__(self) -> None:
        super().__init__(
            message="You are not a participant of this chat room",
            code="NOT_PARTICIPANT",
        )


class NotMessageSenderError(AuthorizationError):
    """Only the sender may delete a message."""

    def __init__(self) -> None:
        super().__init__(
            message="You can only delete your own messages",
            code="NOT_MESSAGE_SENDER",
        )


# --- Not Found (404) ---


class UserNotFoundError(AppException):
    """User not found."""

    def __init__(self) -> None:
        super().__init__(
            message="User not found",
            code="USER_NOT_FOUND",
            status_code=404,
        )


class ChatRoomNotFoundError(AppException):
    """Chat room does not exist or is not available to the requester."""

    def __init__(self) -> None:
        super().__init__(
            message="Chat room not found",
            code="CHAT_ROOM_NOT_FOUND",
            status_code=404,
        )


class MessageNotFoundError(AppException):
    """Message does not exist in the room's log."""

    def __init__(self) -> None:
        super().__init__(
            message="Message not found",
            code="MESSAGE_NOT_FOUND",
            status_code=404,
        )


# --- Unprocessable (422) ---


class MessageValidationError(AppException):
    """Message payload does not match its declared type."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR", status_code=422)


# --- Rate Limit (429) ---


class RateLimitedError(AppException):
    """Sender exceeded the message rate limit."""

    def __init__(self) -> None:
        super().__init__(
            message="You are sending messages too quickly. Please slow down.",
            code="RATE_LIMITED",
            status_code=429,
        )


# --- Service Unavailable (503) ---


class StoreUnavailableError(AppException):
    """Persistence layer failed; the operation was aborted."""

    def __init__(self) -> None:
        super().__init__(
            message="Storage is temporarily unavailable",
            code="STORE_UNAVAILABLE",
            status_code=503,
        )


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.code,
                "message": exc.message,
            },
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors in the AppException envelope."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ],
            },
        },
    )
