"""Custom exception types for mailfiler.

Error messages follow the same standard everywhere:
- What failed (specific operation or component)
- Why it failed (the specific condition)
- How to fix it (actionable guidance)
"""


class MailFilerError(Exception):
    """Base exception for all mailfiler errors."""

    pass


class ConfigValidationError(MailFilerError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(MailFilerError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class StoreIOError(MailFilerError):
    """Raised when the persistent store cannot be read or written.

    Mutating rule operations propagate this to the caller so that a rule is
    never reported as saved when it was not.
    """

    pass


class DatabaseError(StoreIOError):
    """Raised when SQLite operations fail."""

    pass


class RuleNotFoundError(MailFilerError):
    """Raised when a rule index is outside the current rule list.

    Attributes:
        index: The requested rule index
        size: Number of rules in the store at the time of the request
    """

    def __init__(self, index: int, size: int):
        super().__init__(
            f"No rule at index {index}: the store holds {size} rule(s). "
            "Indices shift after a delete, re-fetch the rule list before retrying."
        )
        self.index = index
        self.size = size


class RuleValidationError(MailFilerError):
    """Raised when an imported rule list is malformed.

    Attributes:
        position: Position of the offending element in the payload (None when
            the payload itself is not a list)
    """

    def __init__(self, message: str, position: int | None = None):
        super().__init__(message)
        self.position = position


class MatchEvaluationError(MailFilerError):
    """Raised when a message's headers have an unexpected shape.

    The rule evaluator always catches this and treats it as "no rule found".
    """

    pass
