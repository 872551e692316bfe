"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password. Same message whatever the cause."""
    def __init__(self):
        super().__init__("Invalid email or password")


class SigningKeyUnavailableError(RuntimeError):
    """Access-token signing key missing at startup"""


# Refresh token errors
class TokenNotFoundError(AuthenticationError):
    """Refresh token does not exist"""
    def __init__(self):
        super().__init__("Invalid refresh token")


class TokenRevokedError(AuthenticationError):
    """
    Refresh token exists but was already revoked.

    Raised by the ledger only; the session service turns it into
    TokenReplayDetectedError before it reaches a caller.
    """
    def __init__(self, record: Any = None):
        self.record = record
        super().__init__("Refresh token has been revoked")


class TokenExpiredError(AuthenticationError):
    """Refresh token expired; the user has to log in again"""
    def __init__(self, record: Any = None):
        self.record = record
        super().__init__("Refresh token expired, please log in again")


class TokenReplayDetectedError(AuthenticationError):
    """A rotated refresh token was presented again"""
    def __init__(self):
        super().__init__("Session is no longer valid, please log in again")


class OriginMismatchError(AuthenticationError):
    """Refresh attempted from an origin that does not match the token's"""
    def __init__(self):
        super().__init__("Session is no longer valid, please log in again")


class SessionRefreshError(AuthenticationError):
    """Refresh failed for an internal reason"""
    def __init__(self):
        super().__init__("Unable to refresh session")


class SessionCreationError(AuthenticationError):
    """Login failed for an internal reason"""
    def __init__(self):
        super().__init__("Unable to sign in, please try again")


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} already exists", status_code=409, details=details)


class DuplicateRegistrationError(ResourceAlreadyExistsError):
    """Email or mobile number already registered"""
    def __init__(self, fields: Dict[str, str]):
        super().__init__("Account", details=fields)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class ProtectedRoleViolationError(BusinessLogicError):
    """USER is assigned at registration and can never be changed manually"""
    def __init__(self, role: str):
        super().__init__(
            f"Role {role} is assigned automatically and cannot be changed",
            details={"role": role},
        )


class RoleAlreadyHeldError(BusinessLogicError):
    """Identity already holds the role"""
    def __init__(self, role: str):
        super().__init__(f"User already has role {role}", details={"role": role})


class RoleNotHeldError(BusinessLogicError):
    """Identity does not hold the role it should lose"""
    def __init__(self, role: str):
        super().__init__(f"User does not have role {role}", details={"role": role})


class HierarchyViolationError(BusinessLogicError):
    """Role ladder precondition unmet"""
    def __init__(self, role: str, required: str):
        super().__init__(
            f"User must be {required} before becoming {role}",
            details={"role": role, "required": required},
        )


# System Errors
class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
