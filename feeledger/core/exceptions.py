from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind = "ServiceError"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Malformed, missing or out-of-range input. Raised before any write."""

    kind = "ValidationError"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class AuthenticationError(ServiceError):
    kind = "AuthenticationError"

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(ServiceError):
    kind = "ForbiddenError"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(ServiceError):
    kind = "NotFoundError"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    kind = "ConflictError"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class ExternalServiceError(ServiceError):
    """A collaborator (SMTP) failed or is not configured."""

    kind = "ExternalServiceError"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
