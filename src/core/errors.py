"""Error taxonomy for state operations and user-facing error classification."""

from enum import Enum

from pydantic import BaseModel


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_NOT_AUTHENTICATED = "ERR_NOT_AUTHENTICATED"
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_DUPLICATE_NAME = "ERR_DUPLICATE_NAME"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_CATEGORY_IN_USE = "ERR_CATEGORY_IN_USE"
    ERR_INSUFFICIENT_POINTS = "ERR_INSUFFICIENT_POINTS"
    ERR_PERSISTENCE = "ERR_PERSISTENCE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class TaskQuestError(Exception):
    """Base class for errors raised by state operations."""

    code: str = ErrorCode.ERR_UNKNOWN


class NotAuthenticated(TaskQuestError):  # noqa: N818
    """No signed-in user owns the state being mutated."""

    code = ErrorCode.ERR_NOT_AUTHENTICATED


class InvalidInput(TaskQuestError):  # noqa: N818
    """A draft or patch failed validation."""

    code = ErrorCode.ERR_INVALID_INPUT


class DuplicateName(TaskQuestError):  # noqa: N818
    """A name collides case-insensitively with an existing entry."""

    code = ErrorCode.ERR_DUPLICATE_NAME

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"A {kind} named '{name}' already exists")


class NotFound(TaskQuestError):  # noqa: N818
    """The referenced task, shop item or storage instance does not exist."""

    code = ErrorCode.ERR_NOT_FOUND

    def __init__(self, kind: str, identifier: object) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class CategoryInUse(TaskQuestError):  # noqa: N818
    """A category still referenced by tasks cannot be deleted."""

    code = ErrorCode.ERR_CATEGORY_IN_USE

    def __init__(self, category_id: str, task_count: int) -> None:
        self.category_id = category_id
        self.task_count = task_count
        super().__init__(f"Category '{category_id}' still has {task_count} task(s)")


class InsufficientPoints(TaskQuestError):  # noqa: N818
    """The balance does not cover the price of an item."""

    code = ErrorCode.ERR_INSUFFICIENT_POINTS

    def __init__(self, balance: int, price: int) -> None:
        self.balance = balance
        self.price = price
        super().__init__(f"Not enough points: have {balance}, need {price}")


class PersistenceError(TaskQuestError):
    """A document store call failed or timed out."""

    code = ErrorCode.ERR_PERSISTENCE


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a state operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, NotAuthenticated):
        return ErrorResponse(
            code=exception.code,
            message="You must be logged in to do that.",
            suggestion="Sign in and try again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, DuplicateName):
        return ErrorResponse(
            code=exception.code,
            message=f"A {exception.kind} with this name already exists.",
            suggestion="Pick a different name.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidInput):
        return ErrorResponse(
            code=exception.code,
            message=str(exception) or "Please enter a valid name and amount.",
            suggestion="Check the highlighted fields and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, CategoryInUse):
        return ErrorResponse(
            code=exception.code,
            message="Cannot delete category with existing tasks.",
            suggestion="Move or delete the tasks in this category first.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InsufficientPoints):
        return ErrorResponse(
            code=exception.code,
            message="Not enough points.",
            suggestion=f"Complete more tasks to earn {exception.price - exception.balance} more points.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, NotFound):
        return ErrorResponse(
            code=exception.code,
            message=f"{exception.kind.capitalize()} not found.",
            suggestion="It may have been removed already. Refresh and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, PersistenceError):
        return ErrorResponse(
            code=exception.code,
            message="Failed to save your changes.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
