"""Custom exceptions for fairshare.

Every error raised by the engine carries an ``ErrorKind`` tag so callers can
match on the kind instead of parsing messages.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Tag identifying the category of a fairshare failure."""

    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_SPLIT = "invalid_split"
    EMPTY_MEMBERSHIP = "empty_membership"
    ALREADY_SETTLED = "already_settled"
    ALREADY_UNSETTLED = "already_unsettled"
    NO_UNSETTLED_EXPENSES = "no_unsettled_expenses"
    INVALID_TEMPLATE = "invalid_template"
    INVALID_INPUT = "invalid_input"
    CONFIGURATION = "configuration"


class FairshareError(Exception):
    """Base exception for all fairshare errors."""

    kind: ErrorKind

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(FairshareError):
    """Raised when configuration is invalid or missing."""

    kind = ErrorKind.CONFIGURATION


class UnauthenticatedError(FairshareError):
    """Raised when no acting identity is available."""

    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str | None = None):
        super().__init__(message or "User not authenticated")


class PermissionDeniedError(FairshareError):
    """Raised when the acting identity may not perform an operation."""

    kind = ErrorKind.PERMISSION_DENIED


class NotFoundError(FairshareError):
    """Raised when an expense, group or template does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity.capitalize()} {entity_id} not found")


class InvalidAmountError(FairshareError):
    """Raised when an amount is zero, negative or not finite."""

    kind = ErrorKind.INVALID_AMOUNT

    def __init__(self, amount: float, message: str | None = None):
        self.amount = amount
        super().__init__(
            message or f"Amount must be a finite number greater than zero (got {amount})"
        )


class InvalidSplitError(FairshareError):
    """Raised when split percentages or split keys are inconsistent."""

    kind = ErrorKind.INVALID_SPLIT


class InvalidInputError(FairshareError):
    """Raised when a name or an imported row is malformed."""

    kind = ErrorKind.INVALID_INPUT


class EmptyMembershipError(FairshareError):
    """Raised when an expense would be split among zero members."""

    kind = ErrorKind.EMPTY_MEMBERSHIP

    def __init__(self, message: str | None = None):
        super().__init__(message or "Cannot split an expense among zero members")


class AlreadySettledError(FairshareError):
    """Raised when settling an expense that is already settled."""

    kind = ErrorKind.ALREADY_SETTLED

    def __init__(self, expense_id: str, message: str | None = None):
        self.expense_id = expense_id
        super().__init__(message or f"Expense {expense_id} is already settled")


class AlreadyUnsettledError(FairshareError):
    """Raised when unsettling an expense or group that is not settled."""

    kind = ErrorKind.ALREADY_UNSETTLED

    def __init__(self, entity: str, entity_id: str, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity.capitalize()} {entity_id} is already unsettled")


class NoUnsettledExpensesError(FairshareError):
    """Raised when a group settlement finds nothing to settle."""

    kind = ErrorKind.NO_UNSETTLED_EXPENSES

    def __init__(self, group_id: str, message: str | None = None):
        self.group_id = group_id
        super().__init__(message or f"Group {group_id} has no unsettled expenses")


class InvalidTemplateError(FairshareError):
    """Raised when a template is malformed (empty name, no items, blank description)."""

    kind = ErrorKind.INVALID_TEMPLATE
