"""Compiled output: procedures, trigger registrations and generated tables."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from pgtriggers.references import TableRef

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"
ALL_EVENTS = (INSERT, UPDATE, DELETE)


class Timing(Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class ProcedureSpec:
    """A trigger-returning PL/pgSQL function.

    The body returns the appropriate row image: NEW on insert/update, OLD on
    delete.
    """
    name: str
    table: TableRef
    body: str
    language: str = "plpgsql"
    returns: str = "trigger"
    replace: bool = True


@dataclass(frozen=True)
class TriggerSpec:
    name: str
    table: TableRef
    procedure: str
    events: Tuple[str, ...]
    timing: Timing
    row_level: bool = True
    when: Optional[str] = None


@dataclass(frozen=True)
class ColumnDefinition:
    """Column definition for tables the compiler materialises"""
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    default: Optional[str] = None  # rendered SQL expression


@dataclass(frozen=True)
class IndexDefinition:
    columns: Tuple[str, ...]
    descending: bool = False


@dataclass(frozen=True)
class TableDefinition:
    name: TableRef
    columns: Tuple[ColumnDefinition, ...]
    indexes: Tuple[IndexDefinition, ...] = ()


@dataclass
class CompiledRule:
    """Everything one rule installs, in install order."""
    rule: Any
    tables: List[TableDefinition] = field(default_factory=list)
    procedures: List[ProcedureSpec] = field(default_factory=list)
    triggers: List[TriggerSpec] = field(default_factory=list)

    def procedure(self, name: str) -> Optional[ProcedureSpec]:
        for proc in self.procedures:
            if proc.name == name:
                return proc
        return None

    def trigger(self, name: str) -> Optional[TriggerSpec]:
        for trig in self.triggers:
            if trig.name == name:
                return trig
        return None
