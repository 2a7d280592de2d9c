"""
Gateway error taxonomy.

Every failure raised while handling one inbound event is scoped to the
originating connection: the dispatcher renders it as an ``error`` event
and the connection stays open.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorEvent(BaseModel):
    """Body of the outbound ``error`` event"""
    message: str
    error: str
    details: Optional[Dict[str, Any]] = None


class GatewayException(Exception):
    """Base class for errors reported back to the sending connection"""
    error = "gateway_error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return ErrorEvent(
            message=self.message,
            error=self.error,
            details=self.details,
        ).model_dump()


class UnauthenticatedException(GatewayException):
    """Command received before the connection has an identity"""
    error = "unauthenticated"
    default_message = "Not authenticated"


class NotReadyException(GatewayException):
    """Identity resolved but initial rooms are still loading"""
    error = "not_ready"
    default_message = "Connection is not ready"


class NotFoundException(GatewayException):
    error = "not_found"
    default_message = "Resource not found"


class ForbiddenException(GatewayException):
    error = "forbidden"
    default_message = "Access denied"


class ConflictException(GatewayException):
    error = "conflict"
    default_message = "Conflicting request"


class InvalidPayloadException(GatewayException):
    error = "invalid_payload"
    default_message = "Invalid message format"


class CollaboratorException(GatewayException):
    """A backing store failed on a path where the failure must be surfaced"""
    error = "collaborator_failure"
    default_message = "Service temporarily unavailable"
