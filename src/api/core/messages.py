"""Centralized message codes and default messages for API responses."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel


class MessageCode(str, Enum):
    """Centralized message codes for API responses."""

    # Success codes
    SUCCESS = "SUCCESS"
    UPDATED = "UPDATED"
    LOGGED_OUT = "LOGGED_OUT"

    # Authentication & Authorization
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    AUTH_INSUFFICIENT_ROLE_PERMISSIONS = "AUTH_INSUFFICIENT_ROLE_PERMISSIONS"

    # Rate limiting
    RATE_LIMIT_CONFIG_UPDATED = "RATE_LIMIT_CONFIG_UPDATED"
    RATE_LIMIT_CONFIG_RELOADED = "RATE_LIMIT_CONFIG_RELOADED"
    RATE_LIMIT_CONFIG_CORRUPT = "RATE_LIMIT_CONFIG_CORRUPT"
    RATE_LIMIT_CONFIG_NOT_PERSISTED = "RATE_LIMIT_CONFIG_NOT_PERSISTED"

    # Cache backend
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"


# Default messages for each message code
DEFAULT_MESSAGES = {
    # Success messages
    MessageCode.SUCCESS: "Operation completed successfully",
    MessageCode.UPDATED: "Resource updated successfully",
    MessageCode.LOGGED_OUT: "Token revoked",
    # Authentication & Authorization
    MessageCode.AUTH_REQUIRED: "Authentication required",
    MessageCode.INVALID_TOKEN: "Invalid authentication token",
    MessageCode.TOKEN_REVOKED: "Authentication token has been revoked",
    MessageCode.AUTH_INSUFFICIENT_ROLE_PERMISSIONS: "Insufficient role permissions",
    # Rate limiting
    MessageCode.RATE_LIMIT_CONFIG_UPDATED: "Rate limit configuration updated",
    MessageCode.RATE_LIMIT_CONFIG_RELOADED: "Rate limit configuration reloaded",
    MessageCode.RATE_LIMIT_CONFIG_CORRUPT: "Stored rate limit configuration is corrupt",
    MessageCode.RATE_LIMIT_CONFIG_NOT_PERSISTED: "Rate limit configuration applied but not persisted",
    # Cache backend
    MessageCode.CACHE_UNAVAILABLE: "Cache backend unavailable",
    # Validation errors
    MessageCode.VALIDATION_ERROR: "Validation failed",
    MessageCode.INVALID_INPUT: "Invalid input provided",
    # Generic errors
    MessageCode.INTERNAL_ERROR: "Internal server error",
    MessageCode.BAD_REQUEST: "Bad request",
    MessageCode.NOT_FOUND: "Resource not found",
}

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Base API response model with consistent structure and proper typing."""

    message_code: MessageCode
    message: str
    data: T | None = None

    @classmethod
    def success(
        cls,
        message_code: MessageCode = MessageCode.SUCCESS,
        message: str | None = None,
        data: T | None = None,
    ) -> "APIResponse[T]":
        """Create a success response."""
        return cls(
            message_code=message_code,
            message=message or DEFAULT_MESSAGES.get(message_code, "Success"),
            data=data,
        )


def get_default_message(message_code: MessageCode) -> str:
    """Get default message for a message code."""
    return DEFAULT_MESSAGES.get(message_code, "Operation completed")
