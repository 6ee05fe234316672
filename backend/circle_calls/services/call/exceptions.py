"""
Call Service Exceptions

Custom exceptions for call-related errors.
"""


class CallServiceError(Exception):
    """Base exception for call service errors"""
    pass


class CallNotFoundError(CallServiceError):
    """Raised when call is not found"""
    pass


class NotAllowedError(CallServiceError):
    """Raised when a non-admin attempts an admin-only operation"""
    pass


class CallEndedError(CallServiceError):
    """Raised when mutating a call that has already ended"""
    pass


class CallConflictError(CallServiceError):
    """Raised when concurrent writers keep invalidating a conditional update"""
    pass


class CallStoreError(CallServiceError):
    """Raised when the backing store fails; safe to retry"""
    pass
