# shared/common/exceptions.py
"""
Custom Exception Classes

Typed errors raised by the progression and marketplace engine. The transport
layer maps each kind to an externally visible code; the engine itself never
swallows them.
"""

import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class BaseServiceException(Exception):
    """Base exception class for all engine errors"""

    default_message = 'An unexpected error occurred.'
    error_code = 'INTERNAL_ERROR'

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.code = code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# ENGINE ERRORS
# =============================================================================

class ValidationError(BaseServiceException):
    """Malformed or out-of-range input"""
    default_message = 'Validation error.'
    error_code = 'VALIDATION_ERROR'

    def __init__(self, message: str = None, field: str = None, **kwargs):
        super().__init__(message, **kwargs)
        if field:
            self.details.setdefault('field', field)


class NotFoundError(BaseServiceException):
    """Referenced entity does not exist"""
    default_message = 'The requested resource was not found.'
    error_code = 'NOT_FOUND'

    def __init__(self, resource: str = 'Resource', identifier: Any = None, message: str = None):
        if message is None:
            message = f"{resource} not found"
            if identifier is not None:
                message = f"{resource} {identifier} not found"
        super().__init__(message, details={'resource': resource, 'id': str(identifier) if identifier is not None else None})
        self.resource = resource


class ConflictError(BaseServiceException):
    """Operation would violate an invariant or lost a concurrent race"""
    default_message = 'The request conflicts with the current state.'
    error_code = 'CONFLICT'


class StateError(BaseServiceException):
    """Operation is not valid for the entity's lifecycle state"""
    default_message = 'Operation not allowed in the current state.'
    error_code = 'INVALID_STATE'

    def __init__(self, message: str = None, current_state: str = None, **kwargs):
        super().__init__(message, **kwargs)
        if current_state:
            self.details.setdefault('current_state', current_state)


class OperationCancelledError(BaseServiceException):
    """Caller cancelled the operation or its deadline passed"""
    default_message = 'Operation cancelled before completion.'
    error_code = 'CANCELLED'
