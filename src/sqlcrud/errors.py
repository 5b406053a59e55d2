"""
Structured error types for sqlcrud.

Provides the typed error hierarchy surfaced by models, executors and the
connection manager. Every error carries a category, a retry flag, a
structured context and an optional chained cause, so callers can log and
route failures without parsing messages.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure the caller may handle
    - **Fail Before I/O:** Caller-input errors are raised before any query runs
    - **No Hidden Retries:** Nothing here is retried; ``retryable`` is a hint
    - **Error Chaining:** Classified database errors keep the driver error

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                         CrudError                                │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  InputError              ValidationError     DatabaseError       │
        │  (INPUT)                 (VALIDATION)        (DATABASE)          │
        │     │                                            │               │
        │  InvalidTableNameError                       IntegrityError      │
        │  MissingKeyFieldError                            │               │
        │  EmptyValuesError                  UniqueConstraintViolationError│
        │  FilterExpressionError                                           │
        │     ├─ EmptyArrayFilterError                                     │
        │     ├─ UndefinedValueFilterError                                 │
        │     └─ InvalidFilterExpressionError                              │
        │                                                                  │
        │  CardinalityError        ConnectionStateError  ConfigError       │
        │  (CARDINALITY)           (CONNECTION)          (CONFIG)          │
        │     ├─ EntityNotFoundError   ├─ ConnectionProtocolError          │
        │     ├─ MultipleEntitiesFound └─ NotConnectedError                │
        │     ├─ RowNotFoundError                     InvalidOptionsError  │
        │     └─ MultipleRowsFoundError                                    │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = EntityNotFoundError("user")
    >>> error.table_name
    'user'
    >>> error.category
    <ErrorCategory.CARDINALITY: 'CARDINALITY'>
    >>> error.to_dict()["context"]
    {'table_name': 'user'}

Tags:
    error-handling, exception-hierarchy, sqlcrud, unique-constraint

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Categories are grouped by where the failure originates:
    - **Caller:** INPUT, VALIDATION, CONFIG
    - **Database:** DATABASE, CONNECTION
    - **Result shape:** CARDINALITY
    - **Internal:** INTERNAL, UNKNOWN
    """

    INPUT = "INPUT"               # Empty table name, bad filter, empty values
    VALIDATION = "VALIDATION"     # Rejected by a validation hook
    CONFIG = "CONFIG"             # Invalid options or settings
    DATABASE = "DATABASE"         # Constraint violations, query failures
    CONNECTION = "CONNECTION"     # Connect/disconnect protocol misuse
    CARDINALITY = "CARDINALITY"   # Not found / multiple found
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set are serialized by :meth:`to_dict`, so an
    error raised deep inside the executor and one raised by a model carry
    the same shape in logs.

    Attributes:
        table_name: Table the failing operation targeted
        operation: CRUD operation name (``create``, ``find``, ...)
        constraint: Database constraint name, for integrity errors
        metadata: Additional key-value pairs
    """

    table_name: str | None = None
    operation: str | None = None
    constraint: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table_name", "operation", "constraint"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CrudError(Exception):
    """
    Base exception for all sqlcrud errors.

    All CrudError instances carry:
    - **category:** ErrorCategory enum for classification and routing
    - **retryable:** Whether repeating the same call could succeed
    - **context:** ErrorContext with structured metadata
    - **cause:** Optional underlying exception for chaining

    Subclasses set ``default_category`` and ``default_retryable`` so the
    common case needs no keyword arguments.

    Examples:
        >>> error = CrudError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        Adding context fluently:

        >>> error = CrudError("Insert failed").with_context(table_name="user")
        >>> error.context.table_name
        'user'

        Chaining errors:

        >>> try:
        ...     raise OSError("socket closed")
        ... except OSError as e:
        ...     error = DatabaseError("Query failed", cause=e)
        >>> error.cause
        OSError('socket closed')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CrudError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DatabaseError("Failed").with_context(
                table_name="user",
                operation="modify",
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# =============================================================================
# CALLER INPUT ERRORS
# =============================================================================


class InputError(CrudError):
    """
    Invalid arguments supplied by the caller.

    Always raised before any database I/O and never retryable.
    """

    default_category = ErrorCategory.INPUT


class InvalidTableNameError(InputError):
    """The model was constructed with an empty table name."""

    def __init__(self, table_name: Any = None):
        self.table_name = table_name
        super().__init__("The table name is empty.")


class MissingKeyFieldError(InputError):
    """A key model was constructed without a ``key`` field."""

    def __init__(self, table_name: str, key_field: str = "key"):
        self.table_name = table_name
        self.key_field = key_field
        super().__init__(
            f"The field names of {table_name!r} do not contain the {key_field!r} primary key.",
            context=ErrorContext(table_name=table_name),
        )


class EmptyValuesError(InputError):
    """Insert or update values are empty."""

    def __init__(self, message: str = "The submitted values are empty", **kwargs: Any):
        super().__init__(message, **kwargs)


class FilterExpressionError(InputError):
    """Base class for filter expressions that cannot be compiled."""

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field_name = field_name


class EmptyArrayFilterError(FilterExpressionError):
    """An IN clause was given an empty array."""

    def __init__(self, field_name: str | None = None):
        super().__init__(
            "An empty array has been passed and probably indicates an error in the filter statement.",
            field_name=field_name,
        )


class UndefinedValueFilterError(FilterExpressionError):
    """A filter value was left undefined."""

    def __init__(self, field_name: str | None = None):
        super().__init__(
            "An undefined value has been passed and probably indicates an error in the filter statement.",
            field_name=field_name,
        )


class InvalidFilterExpressionError(FilterExpressionError):
    """The filter expression does not have the mapping / list-of-mappings shape."""

    pass


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(CrudError):
    """
    Input rejected by a validation hook.

    Never retryable - data must be fixed. ``details`` holds one record per
    problem found, each a dict with ``field``, ``message`` and ``type``.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        details: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CrudError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidOptionsError(ConfigError):
    """An options struct holds a value outside its allowed range."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid option {key}: {value!r}")


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class ConnectionStateError(CrudError):
    """The connection manager was used out of order."""

    default_category = ErrorCategory.CONNECTION
    default_retryable = False


class ConnectionProtocolError(ConnectionStateError):
    """``disconnect()`` was called more times than ``connect()``."""

    def __init__(self, message: str = "Disconnect invoked before connect."):
        super().__init__(message)


class NotConnectedError(ConnectionStateError):
    """The engine was requested before ``connect()``."""

    def __init__(self, message: str = "The database engine has not been initialized."):
        super().__init__(message)


# =============================================================================
# CARDINALITY ERRORS
# =============================================================================


class CardinalityError(CrudError):
    """A query returned a different number of rows than the operation requires."""

    default_category = ErrorCategory.CARDINALITY
    default_retryable = False


class EntityNotFoundError(CardinalityError):
    """No matching entity was found."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(
            "No matching entity was found",
            context=ErrorContext(table_name=table_name),
        )


class MultipleEntitiesFoundError(CardinalityError):
    """More than one entity matched a singular operation."""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(
            "More than a single matching entity was found",
            context=ErrorContext(table_name=table_name),
        )


class RowNotFoundError(CardinalityError):
    """A single-row query returned nothing."""

    def __init__(self, message: str = "The query did not return any rows"):
        super().__init__(message)


class MultipleRowsFoundError(CardinalityError):
    """A single-row query returned several rows."""

    def __init__(self, message: str = "The query returned more than a single row"):
        super().__init__(message)


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(CrudError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class IntegrityError(DatabaseError):
    """Database integrity constraint violation."""

    pass


UNIQUE_VIOLATION_TYPE = "any.db_unique_constraint"

_UNIQUE_DETAIL_PATTERN = re.compile(r"^Key \((.*)\)=\((.*)\) already exists\.$")


@dataclass(frozen=True)
class UniqueViolationDetail:
    """Per-field record describing a unique constraint violation."""

    input: str
    type: str
    message: str


class UniqueConstraintViolationError(IntegrityError):
    """
    A unique constraint rejected an insert or update.

    Built from the PostgreSQL error detail, whose shape is
    ``Key (field1, field2)=(value1, value2) already exists.``. Use
    :meth:`from_detail` to parse; it returns ``None`` when the detail has a
    different shape so the caller can re-raise the original error.

    Attributes:
        fields: Field names covered by the constraint
        values: Offending values, as rendered by the database
        details: One :class:`UniqueViolationDetail` per field name
        table_name: Table the constraint belongs to, when reported
        constraint: Constraint name, when reported
    """

    def __init__(
        self,
        fields: list[str],
        values: list[str],
        *,
        table_name: str | None = None,
        constraint: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            f'The unique constraint "{table_name}"."{constraint}" has been violated',
            context=ErrorContext(table_name=table_name, constraint=constraint),
            cause=cause,
        )
        self.fields = fields
        self.values = values
        self.table_name = table_name
        self.constraint = constraint

        fields_string = ", ".join(fields)
        values_string = ", ".join(values)
        message = (
            f'The constraint "{table_name}"."{constraint}" has been violated, while attempting to'
            f" set the ({values_string}) value{'s' if len(values) > 1 else ''}"
            f" in the ({fields_string}) field{'s' if len(fields) > 1 else ''}."
        )
        self.details: dict[str, UniqueViolationDetail] = {
            name: UniqueViolationDetail(input=values_string, type=UNIQUE_VIOLATION_TYPE, message=message)
            for name in fields
        }

    @classmethod
    def from_detail(
        cls,
        detail: str | None,
        *,
        table_name: str | None = None,
        constraint: str | None = None,
        cause: Exception | None = None,
    ) -> UniqueConstraintViolationError | None:
        """Parse a ``Key (...)=(...) already exists.`` detail string."""
        if not detail:
            return None
        match = _UNIQUE_DETAIL_PATTERN.match(detail)
        if match is None:
            return None
        return cls(
            match.group(1).split(", "),
            match.group(2).split(", "),
            table_name=table_name,
            constraint=constraint,
            cause=cause,
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["fields"] = self.fields
        result["values"] = self.values
        return result


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, CrudError):
        return error.retryable
    retryable_types = (
        ConnectionError,
        ConnectionResetError,
        ConnectionRefusedError,
        BrokenPipeError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, CrudError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.CONNECTION
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.INPUT
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CrudError",
    # Input
    "InputError",
    "InvalidTableNameError",
    "MissingKeyFieldError",
    "EmptyValuesError",
    "FilterExpressionError",
    "EmptyArrayFilterError",
    "UndefinedValueFilterError",
    "InvalidFilterExpressionError",
    # Validation
    "ValidationError",
    # Config
    "ConfigError",
    "InvalidOptionsError",
    # Connection
    "ConnectionStateError",
    "ConnectionProtocolError",
    "NotConnectedError",
    # Cardinality
    "CardinalityError",
    "EntityNotFoundError",
    "MultipleEntitiesFoundError",
    "RowNotFoundError",
    "MultipleRowsFoundError",
    # Database
    "DatabaseError",
    "IntegrityError",
    "UniqueViolationDetail",
    "UniqueConstraintViolationError",
    "UNIQUE_VIOLATION_TYPE",
    # Utilities
    "is_retryable",
    "categorize_error",
]
