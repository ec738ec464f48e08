"""Task domain error taxonomy and caller-facing error translation."""

from enum import Enum

from pydantic import BaseModel


class ErrorCode:
    """Error codes for specific error conditions."""

    # Domain errors
    ERR_INVALID_FIELD = "ERR_INVALID_FIELD"
    ERR_DUPLICATE_SUBTASK = "ERR_DUPLICATE_SUBTASK"
    ERR_CAPACITY_EXCEEDED = "ERR_CAPACITY_EXCEEDED"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"

    # Persistence errors
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"
    ERR_STORE_FAILURE = "ERR_STORE_FAILURE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


class TaskDomainError(Exception):
    """Base class for every error raised by the task model and its collaborators.

    Not a ValueError subclass: pydantic would otherwise wrap errors raised from
    validators into a ValidationError and the caller would lose the type.
    """

    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidFieldError(TaskDomainError):
    """A construction or mutation input violates a structural invariant."""

    code = ErrorCode.ERR_INVALID_FIELD

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.reason = message


class DuplicateSubtaskError(InvalidFieldError):
    """The sub-task identity is already attached to the container."""

    code = ErrorCode.ERR_DUPLICATE_SUBTASK

    def __init__(self, subtask_id: int) -> None:
        super().__init__("subtasks", f"sub-task {subtask_id} is already attached")
        self.subtask_id = subtask_id


class CapacityExceededError(TaskDomainError):
    """Attaching another sub-task would exceed the container capacity."""

    code = ErrorCode.ERR_CAPACITY_EXCEEDED

    def __init__(self, limit: int, current: int) -> None:
        super().__init__(f"sub-task capacity exceeded (limit={limit}, current={current})")
        self.limit = limit
        self.current = current


class InvalidTransitionError(TaskDomainError):
    """The attempted status change violates the task state machine."""

    code = ErrorCode.ERR_INVALID_STATE_TRANSITION

    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status


class TaskNotFoundError(TaskDomainError):
    """No stored snapshot exists for the requested identity."""

    code = ErrorCode.ERR_TASK_NOT_FOUND

    def __init__(self, task_id: int) -> None:
        super().__init__(f"task {task_id} not found")
        self.task_id = task_id


class StoreError(TaskDomainError):
    """The snapshot store rejected or failed an operation."""

    code = ErrorCode.ERR_STORE_FAILURE


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Translate an error raised by a task operation into a caller-facing response.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, DuplicateSubtaskError):
        return ErrorResponse(
            code=exception.code,
            message=f"Sub-task {exception.subtask_id} is already part of this project.",
            suggestion="Check the project's sub-task list before adding.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidFieldError):
        return ErrorResponse(
            code=exception.code,
            message=f"Invalid value for '{exception.field}': {exception.reason}.",
            suggestion="Correct the field and submit the task again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, CapacityExceededError):
        return ErrorResponse(
            code=exception.code,
            message=f"This project is full ({exception.current} of {exception.limit} sub-tasks).",
            suggestion="Raise the project's capacity or split the work into another project.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidTransitionError):
        return ErrorResponse(
            code=exception.code,
            message=f"This action cannot be performed in the current state ({exception.status}): {exception.message}.",
            suggestion="Check the task status and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, TaskNotFoundError):
        return ErrorResponse(
            code=exception.code,
            message=f"I couldn't find task {exception.task_id}.",
            suggestion="List tasks to see the available identities.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, StoreError):
        return ErrorResponse(
            code=exception.code,
            message="The task could not be saved.",
            suggestion="Please try again. If the problem persists, contact support.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
