"""
Custom Exceptions for Student Hub
=================================

Read paths never raise these for transport or HTTP failures; they come back
inside a ReadResult instead. Write paths raise them so the caller can surface
the failure.

Usage:
    from studenthub.exceptions import GatewayError, InvalidTransitionError

    try:
        await store.approve_activity(activity_id, "Dr. Kumar")
    except InvalidTransitionError as e:
        logger.warning(f"Cannot approve: {e}")
"""

from typing import Optional, Any, Dict


class StudentHubError(Exception):
    """Base exception for all Student Hub errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Transport Errors
# ============================================

class GatewayError(StudentHubError):
    """Backend answered with a non-2xx status or an unreadable body"""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        details: Dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, code="GATEWAY_ERROR", details=details)
        self.status_code = status_code


class NetworkError(GatewayError):
    """Backend could not be reached"""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message, endpoint=endpoint)
        self.code = "NETWORK_ERROR"


class AuthenticationError(StudentHubError):
    """Login failed"""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, code="AUTH_FAILED")


# ============================================
# Persistence Errors
# ============================================

class StorageError(StudentHubError):
    """A persisted value could not be written"""

    def __init__(self, message: str, key: Optional[str] = None):
        details = {"key": key} if key else {}
        super().__init__(message, code="STORAGE_ERROR", details=details)


# ============================================
# Validation Errors
# ============================================

class ValidationError(StudentHubError):
    """Input validation failed"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidTransitionError(ValidationError):
    """Approval status change not allowed from the record's current status"""

    def __init__(self, resource_type: str, resource_id: str, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} {resource_type} '{resource_id}' with status '{current_status}'",
            field="status"
        )
        self.code = "INVALID_TRANSITION"
        self.details.update({
            "resource_type": resource_type,
            "resource_id": resource_id,
            "current_status": current_status,
            "action": action,
        })


class StaleUpdateError(StudentHubError):
    """Update was based on an older version of the record"""

    def __init__(self, resource_type: str, resource_id: str, expected: int, actual: int):
        super().__init__(
            f"{resource_type} '{resource_id}' is at version {actual}, expected {expected}",
            code="STALE_UPDATE",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "expected_version": expected,
                "actual_version": actual,
            }
        )


# ============================================
# Configuration Errors
# ============================================

class ConfigurationError(StudentHubError):
    """Configuration value is invalid"""

    def __init__(self, message: str, setting: Optional[str] = None):
        details = {"setting": setting} if setting else {}
        super().__init__(message, code="CONFIG_ERROR", details=details)
