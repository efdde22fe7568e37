"""Custom exceptions for API layer."""

from typing import Any

from fastapi import HTTPException


class APIError(HTTPException):
    """Base exception for API errors.

    Extends HTTPException for native FastAPI integration.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: str | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message
            code: Error code
            status_code: HTTP status code
            details: Additional detail information
        """
        super().__init__(
            status_code=status_code,
            detail={"message": message, "code": code, "details": details},
        )
        self.message = message
        self.code = code
        self.details = details


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(
        self,
        resource: str,
        resource_id: Any,
    ) -> None:
        """Initialize not found error.

        Args:
            resource: Resource type (e.g., "Model")
            resource_id: Resource identifier
        """
        super().__init__(
            message=f"{resource} not found",
            code="NOT_FOUND",
            status_code=404,
            details=f"{resource} with id '{resource_id}' does not exist",
        )
        self.resource = resource
        self.resource_id = resource_id
