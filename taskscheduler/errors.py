"""
Typed failures raised by the scheduler.

Every admin-facing failure carries an HTTP-style status code, a stable
error code and optional structured details so the admin surface can render
it without knowing the concrete exception type.
"""

from typing import Any, Optional


class SchedulerError(Exception):
    """Base class for scheduler failures surfaced to callers."""

    status_code = 500
    error_code: Optional[str] = None

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        return {
            'statusCode': self.status_code,
            'message': self.message,
            'errorCode': self.error_code,
            'details': self.details,
        }


class TaskNotRegistered(SchedulerError):
    """No handler is compiled into this build for the task name."""
    status_code = 404
    error_code = 'TASK_NOT_REGISTERED'

    def __init__(self, name: str):
        super().__init__(f"Task handler does not exist: '{name}'")
        self.name = name


class TaskNotFound(SchedulerError):
    """A registered task has no persisted row."""
    status_code = 500
    error_code = 'TASK_NOT_FOUND'

    def __init__(self, name: str):
        super().__init__(f"Task row does not exist: '{name}'")
        self.name = name


class MissingCron(SchedulerError):
    status_code = 400
    error_code = 'MISSING_CRON'

    def __init__(self, name: str):
        super().__init__(f"Task cron expression is required: '{name}'")
        self.name = name


class InvalidTaskConfig(SchedulerError):
    status_code = 400
    error_code = 'INVALID_TASK_CONFIG'

    def __init__(self, name: str, errors: list):
        super().__init__(f"Invalid task configuration: '{name}'", details=errors)
        self.name = name
        self.errors = errors


class InvalidCronError(SchedulerError):
    status_code = 400
    error_code = 'INVALID_CRON'

    def __init__(self, cron: Optional[str], reason: str = ''):
        message = f"Invalid cron expression: {cron!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.cron = cron


class RequestValidationError(SchedulerError):
    """Admin request payload has the wrong shape."""
    status_code = 400
    error_code = 'REQUEST_VALIDATION_FAILED'

    def __init__(self, errors: list):
        super().__init__('Request validation failed', details=errors)
        self.errors = errors
