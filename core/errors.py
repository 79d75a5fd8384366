"""
Marginalia - Unified Error Handling

Provides the error hierarchy for consistent error management across the
reference parser, annotation store, collection manager and search engine.

Features:
- Hierarchical exception classes with context preservation
- Error severity levels for prioritized handling
- Actionable, user-facing messages for every failure
- OpenTelemetry span recording
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


class ErrorSeverity(Enum):
    """Error severity levels for prioritized handling."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Structured context for error debugging and tracing."""

    operation: str
    component: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    input_data: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for serialization."""
        return {
            "operation": self.operation,
            "component": self.component,
            "timestamp": self.timestamp.isoformat(),
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "input_data": self.input_data,
            "metadata": self.metadata,
            "stack_trace": self.stack_trace,
        }

    @classmethod
    def from_current_span(
        cls,
        operation: str,
        component: str,
        **kwargs: Any
    ) -> "ErrorContext":
        """Create context from current OpenTelemetry span."""
        span = trace.get_current_span()
        trace_id = None
        span_id = None

        if span and span.is_recording():
            ctx = span.get_span_context()
            if ctx.is_valid:
                trace_id = format(ctx.trace_id, "032x")
                span_id = format(ctx.span_id, "016x")

        return cls(
            operation=operation,
            component=component,
            trace_id=trace_id,
            span_id=span_id,
            stack_trace=traceback.format_exc(),
            **kwargs
        )


class MarginaliaError(Exception):
    """
    Base exception for all Marginalia errors.

    Provides:
    - Structured error context
    - Severity level
    - Chained exception support
    - OpenTelemetry span recording
    """

    default_severity: ErrorSeverity = ErrorSeverity.ERROR
    error_code: str = "MARGINALIA_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context
        self.severity = severity or self.default_severity
        self.cause = cause
        self.recoverable = recoverable
        self.suggestions = suggestions or []
        self.timestamp = datetime.now(timezone.utc)

        self._record_to_span()

    def _record_to_span(self) -> None:
        """Record exception to current OpenTelemetry span."""
        span = trace.get_current_span()
        if span and span.is_recording():
            span.set_status(Status(StatusCode.ERROR, self.message))
            span.record_exception(self)
            span.set_attribute("error.code", self.error_code)
            span.set_attribute("error.severity", self.severity.value)
            span.set_attribute("error.recoverable", self.recoverable)
            if self.context:
                span.set_attribute("error.component", self.context.component)
                span.set_attribute("error.operation", self.context.operation)

    def user_message(self) -> str:
        """Message suitable for showing to the person who triggered the failure."""
        if self.suggestions:
            return f"{self.message} ({'; '.join(self.suggestions)})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context.to_dict() if self.context else None,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (component: {self.context.component})")
        if self.cause:
            parts.append(f" [caused by: {self.cause}]")
        return "".join(parts)


# =============================================================================
# CORPUS
# =============================================================================


class CorpusLoadError(MarginaliaError):
    """A corpus document could not be turned into an index."""

    error_code = "CORPUS_LOAD_ERROR"
    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, path: Optional[str] = None, problems: Sequence[str] = (), **kwargs: Any):
        super().__init__(message, **kwargs)
        self.path = path
        self.problems = list(problems)

    def user_message(self) -> str:
        if self.problems:
            return f"{self.message}: {'; '.join(self.problems)}"
        return self.message


# =============================================================================
# REFERENCE PARSING
# =============================================================================


class ReferenceParseError(MarginaliaError):
    """A reference string could not be resolved to canonical addresses."""

    error_code = "PARSE_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(self, message: str, reference: Optional[str] = None, **kwargs: Any):
        super().__init__(message, recoverable=True, **kwargs)
        self.reference = reference


class EmptyInputError(ReferenceParseError):
    """Nothing to parse."""

    error_code = "PARSE_EMPTY_INPUT"

    def __init__(self, reference: Optional[str] = None, **kwargs: Any):
        super().__init__(
            "Reference is empty",
            reference=reference,
            suggestions=["type a reference such as 'John 3:16'"],
            **kwargs,
        )


class UnknownBookError(ReferenceParseError):
    """The book part of a reference matches no known book alias."""

    error_code = "PARSE_UNKNOWN_BOOK"

    def __init__(
        self,
        book: str,
        reference: Optional[str] = None,
        candidates: Sequence[str] = (),
        **kwargs: Any,
    ):
        self.book = book
        self.candidates = list(candidates)
        if self.candidates:
            message = f"Book '{book}' is ambiguous"
            suggestions = [f"did you mean {', '.join(self.candidates)}?"]
        else:
            message = f"Unknown book '{book}'"
            suggestions = ["use a book name or abbreviation such as 'Gen', 'Ps' or '1 John'"]
        super().__init__(message, reference=reference, suggestions=suggestions, **kwargs)


class OutOfRangeError(ReferenceParseError):
    """Chapter or verse lies outside the bounds of the active corpus."""

    error_code = "PARSE_OUT_OF_RANGE"

    def __init__(
        self,
        message: str,
        reference: Optional[str] = None,
        book: Optional[str] = None,
        chapter: Optional[int] = None,
        verse: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, reference=reference, **kwargs)
        self.book = book
        self.chapter = chapter
        self.verse = verse


class MalformedRangeError(ReferenceParseError):
    """Structurally invalid reference: end before start, missing verse, stray text."""

    error_code = "PARSE_MALFORMED_RANGE"


# =============================================================================
# ANNOTATIONS AND COLLECTIONS
# =============================================================================


class NotFoundError(MarginaliaError):
    """An id named by a mutation does not exist."""

    error_code = "NOT_FOUND"
    default_severity = ErrorSeverity.WARNING

    def __init__(self, kind: str, identifier: str, **kwargs: Any):
        super().__init__(f"No {kind} with id '{identifier}'", recoverable=True, **kwargs)
        self.kind = kind
        self.identifier = identifier


class ConflictError(MarginaliaError):
    """A mutation would violate a store invariant."""

    error_code = "CONFLICT"
    default_severity = ErrorSeverity.WARNING

    def __init__(self, message: str, conflicting_ids: Sequence[str] = (), **kwargs: Any):
        super().__init__(message, recoverable=True, **kwargs)
        self.conflicting_ids = list(conflicting_ids)


class ConfirmationRequiredError(ConflictError):
    """A destructive operation was requested without explicit confirmation."""

    error_code = "CONFIRMATION_REQUIRED"


class MarginaliaValidationError(MarginaliaError):
    """Invalid input to a command or query."""

    error_code = "VALIDATION_ERROR"
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        actual_value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, recoverable=True, **kwargs)
        self.field_name = field_name
        self.actual_value = actual_value


class AnnotationKindMismatchError(MarginaliaValidationError):
    """A payload update tried to change the kind of an annotation."""

    error_code = "ANNOTATION_KIND_MISMATCH"


class QueryTooLongError(MarginaliaValidationError):
    """A search query exceeds the configured length limit."""

    error_code = "QUERY_TOO_LONG"


class CollectionImportError(MarginaliaError):
    """A serialized collection could not be imported at all."""

    error_code = "IMPORT_ERROR"


class SchemaInvalidError(CollectionImportError):
    """The serialized collection does not match the export schema."""

    error_code = "IMPORT_SCHEMA_INVALID"

    def __init__(self, message: str, problems: Sequence[str] = (), **kwargs: Any):
        super().__init__(message, **kwargs)
        self.problems = list(problems)

    def user_message(self) -> str:
        if self.problems:
            return f"{self.message}: {'; '.join(self.problems)}"
        return self.message


# =============================================================================
# LONG OPERATIONS AND PERSISTENCE
# =============================================================================


class OperationCancelledError(MarginaliaError):
    """A cancellable operation was stopped before it committed anything."""

    error_code = "CANCELLED"
    default_severity = ErrorSeverity.INFO

    def __init__(self, operation: str, **kwargs: Any):
        super().__init__(f"{operation} was cancelled; nothing was changed", recoverable=True, **kwargs)
        self.operation = operation


class PersistenceError(MarginaliaError):
    """The storage collaborator failed to load or save session state."""

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.path = path
