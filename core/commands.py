"""
Marginalia - Command Objects

Every user action is an explicit request object processed atomically by the
store that owns the affected state, and answered with a CommandResult. A
command either commits completely or raises without changing anything.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Type
from uuid import UUID, uuid4

from domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class BaseCommand:
    """Base class for all commands."""
    command_id: UUID = field(default_factory=uuid4)
    correlation_id: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of a committed command.

    Attributes:
        command_id: Id of the command that produced this result
        events: Domain events, in commit order
        affected_ids: Ids of records created, changed or removed
        replaced_ids: Ids removed by a merge and folded into ``value``
        conflicts: Ids that overlapped the request, whatever the policy did
        value: The primary record produced (created annotation, layer, ...)
    """
    command_id: UUID
    events: Tuple[DomainEvent, ...] = ()
    affected_ids: Tuple[str, ...] = ()
    replaced_ids: Tuple[str, ...] = ()
    conflicts: Tuple[str, ...] = ()
    value: Any = None

    @property
    def merged(self) -> bool:
        return bool(self.replaced_ids)


Handler = Callable[[Any], CommandResult]


class CommandDispatcher:
    """
    Routes commands to handlers registered by command type.

    Owners register their bound handler methods once, then ``execute``
    any supported command.
    """

    def __init__(self) -> None:
        self.handlers: Dict[type, Handler] = {}

    def register(self, command_type: Type[BaseCommand], handler: Handler) -> None:
        self.handlers[command_type] = handler

    def dispatch(self, command: BaseCommand) -> CommandResult:
        """
        Dispatch command to appropriate handler.

        Raises:
            ValueError: If no handler registered for command type
        """
        command_type = type(command)
        if command_type not in self.handlers:
            raise ValueError(f"No handler registered for {command_type.__name__}")
        return self.handlers[command_type](command)

