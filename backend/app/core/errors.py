"""
Domain errors for the goal tracker.

Every failure a service can report is one of the categories below. Each
category fixes the HTTP status; concrete errors fix the machine-readable
code. The exception handlers in main.py turn them into
``{"error": {"code", "message", "details"}}`` responses.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class GoalTrackerError(Exception):
    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[dict] = None):
        self.message = message or self.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Categories
# =============================================================================

class NotFound(GoalTrackerError):
    status_code = 404


class InvalidState(GoalTrackerError):
    """Operation is not valid for the entity's current status."""
    status_code = 409


class ValidationFailed(GoalTrackerError):
    status_code = 422
    code = "validation_error"
    message = "Validation failed"


class PreconditionFailed(GoalTrackerError):
    status_code = 412


class RateLimited(GoalTrackerError):
    status_code = 429
    code = "rate_limited"
    message = "Too many requests, try again later"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message, {"retry_after": retry_after})


class ExternalServiceFailure(GoalTrackerError):
    status_code = 502


class StorageFailure(GoalTrackerError):
    status_code = 500
    code = "database_error"
    message = "A database error occurred"


# =============================================================================
# Concrete errors
# =============================================================================

class GoalNotFound(NotFound):
    code = "goal_not_found"
    message = "Goal not found or access denied"


class ParentGoalNotFound(NotFound):
    code = "parent_goal_not_found"
    message = "Parent goal not found or access denied"


class ProgressNotFound(NotFound):
    code = "progress_not_found"
    message = "Progress entry not found or access denied"


class GoalNotActive(InvalidState):
    code = "goal_not_active"
    message = "Goal is not active"


class GoalNotRetryable(InvalidState):
    code = "goal_not_retryable"
    message = "Goal can only be retried when status is completed_failure or abandoned"


class GoalNotContinuable(InvalidState):
    code = "goal_not_continuable"
    message = "Goal can only be continued when status is completed_success"


class TargetNotReached(InvalidState):
    code = "target_not_reached"
    message = "Current value has not reached the target value"


class ActiveGoalExists(InvalidState):
    code = "active_goal_exists"
    message = "An active goal already exists in this iteration chain"


class GoalNotYoungest(InvalidState):
    code = "goal_not_youngest"
    message = "Only the most recent goal in an iteration chain can start a new iteration"


class GoalLocked(InvalidState):
    code = "goal_locked"
    message = "Name, target value and deadline cannot be changed once progress has been recorded"


class GoalHasProgress(InvalidState):
    code = "goal_has_progress"
    message = "Goals with progress entries cannot be deleted"


class InvalidGoalState(InvalidState):
    code = "invalid_goal_state"
    message = "AI summary can only be generated for finished goals"


class NotEnoughData(PreconditionFailed):
    code = "not_enough_data"
    message = "At least 3 progress entries are required to generate a summary"


class AIProviderError(ExternalServiceFailure):
    code = "ai_provider_error"
    message = "The text generation service returned an error"


class AIProviderTimeout(ExternalServiceFailure):
    code = "ai_provider_timeout"
    message = "The text generation service timed out"


class MissingApiKey(ExternalServiceFailure):
    code = "missing_api_key"
    message = "Text generation is not configured"


@contextmanager
def storage_errors(action: str):
    """Re-raise SQLAlchemy failures as StorageFailure."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(f"Database error while {action}: {exc}")
        raise StorageFailure() from exc
