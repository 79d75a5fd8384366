"""
Marginalia - Core Module

Foundations every component builds on:
- Error taxonomy with actionable user messages
- Command objects and dispatch (one request, one atomic result)
- Cancellation and cooperative iteration for long operations

Usage:
    from core import CancelScope, ConflictError, MarginaliaError
"""

from core.errors import (
    AnnotationKindMismatchError,
    CollectionImportError,
    ConfirmationRequiredError,
    ConflictError,
    CorpusLoadError,
    EmptyInputError,
    ErrorContext,
    ErrorSeverity,
    MalformedRangeError,
    MarginaliaError,
    MarginaliaValidationError,
    NotFoundError,
    OperationCancelledError,
    OutOfRangeError,
    PersistenceError,
    QueryTooLongError,
    ReferenceParseError,
    SchemaInvalidError,
    UnknownBookError,
)
from core.async_utils import CancelScope, iterate_cooperatively
from core.commands import BaseCommand, CommandDispatcher, CommandResult

__all__ = [
    # Errors
    "MarginaliaError",
    "ErrorContext",
    "ErrorSeverity",
    "CorpusLoadError",
    "ReferenceParseError",
    "EmptyInputError",
    "UnknownBookError",
    "OutOfRangeError",
    "MalformedRangeError",
    "NotFoundError",
    "ConflictError",
    "ConfirmationRequiredError",
    "MarginaliaValidationError",
    "AnnotationKindMismatchError",
    "QueryTooLongError",
    "CollectionImportError",
    "SchemaInvalidError",
    "OperationCancelledError",
    "PersistenceError",
    # Async
    "CancelScope",
    "iterate_cooperatively",
    # Commands
    "BaseCommand",
    "CommandDispatcher",
    "CommandResult",
]
