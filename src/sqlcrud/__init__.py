"""
sqlcrud - Generic async CRUD data access over SQLAlchemy Core.

Typed create/find/modify/destroy/count/exists operations over any table,
with filter expressions compiled to WHERE clauses, lifecycle events around
each operation and classified database errors.

Modules:
    connection   Reference-counted engine handle, transactions
    engine       AsyncEngine factory, URL normalization
    filters      Filter expression compiler
    models       Model, BaseModel, KeyModel
    events       Lifecycle phases, events and emitters
    executor     Statement execution, error classification
    options      Option structs for builders and operations
    validation   Validator protocol, pydantic SchemaValidator
    errors       Error hierarchy
    logging      structlog configuration
    settings     DatabaseSettings (pydantic-settings)
"""

from sqlcrud.connection import Connection, ConnectionInfo
from sqlcrud.errors import (
    CrudError,
    EmptyArrayFilterError,
    EmptyValuesError,
    EntityNotFoundError,
    InvalidFilterExpressionError,
    MultipleEntitiesFoundError,
    MultipleRowsFoundError,
    RowNotFoundError,
    UndefinedValueFilterError,
    UniqueConstraintViolationError,
    ValidationError,
)
from sqlcrud.events import CrudOperation, LifecycleEvent, LifecyclePhase
from sqlcrud.executor import to_sql_string
from sqlcrud.filters import UNDEFINED, compile_filter_expression
from sqlcrud.models import BaseModel, KeyModel, Model
from sqlcrud.options import (
    CountOptions,
    CreateOptions,
    DestroyOptions,
    ExistsOptions,
    FindOptions,
    ModifyOptions,
    OrderBy,
    Page,
)
from sqlcrud.settings import DatabaseSettings
from sqlcrud.validation import NullValidator, SchemaValidator, Validator

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Connection
    "Connection",
    "ConnectionInfo",
    "DatabaseSettings",
    # Models
    "Model",
    "BaseModel",
    "KeyModel",
    # Filters
    "UNDEFINED",
    "compile_filter_expression",
    "to_sql_string",
    # Options
    "CreateOptions",
    "FindOptions",
    "CountOptions",
    "ExistsOptions",
    "ModifyOptions",
    "DestroyOptions",
    "OrderBy",
    "Page",
    # Events
    "CrudOperation",
    "LifecycleEvent",
    "LifecyclePhase",
    # Validation
    "Validator",
    "NullValidator",
    "SchemaValidator",
    # Errors
    "CrudError",
    "EmptyArrayFilterError",
    "EmptyValuesError",
    "EntityNotFoundError",
    "InvalidFilterExpressionError",
    "MultipleEntitiesFoundError",
    "MultipleRowsFoundError",
    "RowNotFoundError",
    "UndefinedValueFilterError",
    "UniqueConstraintViolationError",
    "ValidationError",
]
