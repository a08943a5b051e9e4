"""
Custom Exception Classes for the Engagement API.

This module defines the exception hierarchy used by the engagement core. Every
error raised by the store, the engines or the orchestrating service derives
from `EngagementAPIException`, so the HTTP layer can translate them with a
single handler.

Key Components:
- `EngagementAPIException`: The base class. It carries a message, an error
  code, and an optional `details` dictionary.
- `NotFoundError`, `ForbiddenError`, `InvalidOperationError`, `ValidationError`:
  terminal errors returned to the caller immediately.
- `ConflictError`: a version mismatch on a conditional write. The engagement
  service retries these internally and only surfaces one when its retries are
  exhausted.
- `StoreUnavailableError`: any unexpected storage failure.
- `SubscriptionSyncError`: the second half of a subscription toggle failed, so
  `subscribed_channels` and `subscriber_count` have drifted.
- `to_http_exception`: maps an exception to FastAPI's `HTTPException`.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class EngagementAPIException(Exception):
    """Base exception class for the Engagement API"""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "ENGAGEMENT_API_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(EngagementAPIException):
    """Raised when a video, comment or user id does not resolve"""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} not found: {entity_id}",
            "NOT_FOUND",
            {"entity": entity, "id": entity_id},
        )


class ForbiddenError(EngagementAPIException):
    """Raised when the actor lacks ownership or admin rights"""

    status_code = 403

    def __init__(self, reason: str, error_code: str = "FORBIDDEN", **details: Any):
        super().__init__(reason, error_code, {"reason": reason, **details})


class InvalidOperationError(ForbiddenError):
    """Raised for operations that are never allowed, such as self-subscription"""

    def __init__(self, reason: str, **details: Any):
        super().__init__(reason, "INVALID_OPERATION", **details)


class ValidationError(EngagementAPIException):
    """Raised when input validation fails"""

    status_code = 400

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Validation failed for field '{field}': {reason}",
            "VALIDATION_ERROR",
            {"field": field, "value": str(value), "reason": reason},
        )


class ConflictError(EngagementAPIException):
    """Raised when a conditional write loses against a concurrent writer"""

    status_code = 409

    def __init__(self, entity: str, entity_id: str, attempts: int = 1):
        super().__init__(
            f"Concurrent update conflict on {entity} {entity_id} "
            f"after {attempts} attempt(s)",
            "CONFLICT",
            {"entity": entity, "id": entity_id, "attempts": attempts},
        )


class StoreUnavailableError(EngagementAPIException):
    """Raised when store operations fail"""

    status_code = 503

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Store operation '{operation}' failed: {reason}",
            "STORE_UNAVAILABLE",
            {"operation": operation, "reason": reason},
        )


class SubscriptionSyncError(EngagementAPIException):
    """Raised when only one half of a subscription toggle was persisted"""

    def __init__(self, subscriber_id: str, target_id: str, delta: int, reason: str):
        super().__init__(
            f"Subscription of {subscriber_id} to {target_id} was recorded but "
            f"the subscriber count was not adjusted: {reason}",
            "SUBSCRIPTION_SYNC_ERROR",
            {
                "subscriber_id": subscriber_id,
                "target_id": target_id,
                "delta": delta,
                "reason": reason,
            },
        )


def to_http_exception(exc: EngagementAPIException) -> HTTPException:
    """Convert EngagementAPIException to FastAPI HTTPException"""

    status_code_map = {
        "NOT_FOUND": 404,
        "FORBIDDEN": 403,
        "INVALID_OPERATION": 403,
        "VALIDATION_ERROR": 400,
        "CONFLICT": 409,
        "STORE_UNAVAILABLE": 503,
        "SUBSCRIPTION_SYNC_ERROR": 500,
    }

    status_code = status_code_map.get(exc.error_code, exc.status_code)

    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
