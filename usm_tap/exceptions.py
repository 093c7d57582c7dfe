from __future__ import annotations


class AppError(Exception):
    """Base application exception with status metadata."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class RateLimitError(AppError):
    def __init__(self, message: str = "Too many requests"):
        super().__init__(message, status_code=429)


class ChatServiceError(AppError):
    """Raised when the remote chat API cannot produce an answer."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)


class ChatTimeoutError(ChatServiceError):
    def __init__(self, message: str = "API request timed out"):
        super().__init__(message, status_code=504)


class ChatNetworkError(ChatServiceError):
    pass


class ChatStatusError(ChatServiceError):
    def __init__(self, upstream_status: int, reason: str = ""):
        detail = f"HTTP {upstream_status}: {reason}".rstrip(": ")
        super().__init__(detail)
        self.upstream_status = upstream_status


class InvalidResponseError(ChatServiceError):
    def __init__(self, message: str = "Invalid API response format"):
        super().__init__(message)


class EncryptionError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class SessionError(AppError):
    def __init__(self, message: str = "No active session"):
        super().__init__(message, status_code=409)


class HoloOceanError(AppError):
    def __init__(self, message: str = "Not connected to HoloOcean", status_code: int = 503):
        super().__init__(message, status_code=status_code)
