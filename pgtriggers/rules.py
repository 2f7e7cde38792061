#!/usr/bin/env python3
"""
Rule Descriptions

One frozen dataclass per rule kind. Together they form the tagged union the
compiler dispatches on; ``kind`` is the tag used in rule files.

Table fields take a ``TableRef`` or a ``"table"``/``"schema.table"`` string.
Column fields that feed a value (summed columns) take a column name or any
``Expression`` from ``pgtriggers.references``.

Every rule accepts, keyword-only:

- ``function_name`` / ``trigger_name``: override the generated names
- ``trigger_depth_limit``: skip the rule's side effect when
  ``pg_trigger_depth()`` exceeds this value (must be >= 1)
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Tuple

from pgtriggers.specs import ALL_EVENTS


def _pairs(value: Any) -> Any:
    """Freeze a mapping into an ordered tuple of pairs; leave anything else alone."""
    if isinstance(value, dict):
        return tuple(value.items())
    if isinstance(value, list):
        return tuple(tuple(p) if isinstance(p, list) else p for p in value)
    return value


@dataclass(frozen=True)
class RuleDescription:
    kind: ClassVar[str] = ""

    function_name: Optional[str] = field(default=None, kw_only=True)
    trigger_name: Optional[str] = field(default=None, kw_only=True)
    trigger_depth_limit: Optional[int] = field(default=None, kw_only=True)


@dataclass(frozen=True)
class CounterCacheRule(RuleDescription):
    """``main_table.counter_column`` counts rows of ``counted_table`` per key."""
    kind: ClassVar[str] = "counter_cache"

    main_table: Any
    main_table_id_column: str
    counter_column: str
    counted_table: Any
    counted_table_id_column: str


@dataclass(frozen=True)
class SumCacheRule(RuleDescription):
    """``main_table.sum_column`` sums ``summed_column`` of ``summed_table`` per key."""
    kind: ClassVar[str] = "sum_cache"

    main_table: Any
    main_table_id_column: str
    sum_column: str
    summed_table: Any
    summed_table_id_column: str
    summed_column: Any


@dataclass(frozen=True)
class SumThroughManyCacheRule(RuleDescription):
    """Sum cache through a join table: main <- join_table -> summed."""
    kind: ClassVar[str] = "sum_through_many_cache"

    main_table: Any
    sum_column: str
    summed_table: Any
    summed_column: Any
    join_table: Any
    main_table_fk_column: str
    summed_table_fk_column: str
    main_table_id_column: str = "id"
    summed_table_id_column: str = "id"
    join_function_name: Optional[str] = None
    join_trigger_name: Optional[str] = None


@dataclass(frozen=True)
class TouchRule(RuleDescription):
    """
    Bump ``touch_table.column`` to CURRENT_TIMESTAMP whenever a related row
    of ``main_table`` changes. ``expr`` maps touch-table columns to
    main-table columns (composite keys allowed).

    ``hop_limit`` caps the trigger nesting depth at which touching still
    happens, for rule graphs where two tables touch each other.
    """
    kind: ClassVar[str] = "touch"

    main_table: Any
    touch_table: Any
    column: str
    expr: Any
    hop_limit: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'expr', _pairs(self.expr))


@dataclass(frozen=True)
class ImmutableRule(RuleDescription):
    kind: ClassVar[str] = "immutable"

    table: Any
    columns: Tuple[str, ...]

    def __post_init__(self):
        if isinstance(self.columns, str):
            object.__setattr__(self, 'columns', (self.columns,))
        elif isinstance(self.columns, list):
            object.__setattr__(self, 'columns', tuple(self.columns))


@dataclass(frozen=True)
class ForeignKeyArrayRule(RuleDescription):
    """Array column whose every element must exist in ``referenced_table.referenced_column``."""
    kind: ClassVar[str] = "foreign_key_array"

    table: Any
    column: str
    referenced_table: Any
    referenced_column: str
    referenced_function_name: Optional[str] = None
    referenced_trigger_name: Optional[str] = None


@dataclass(frozen=True)
class JsonAuditLogRule(RuleDescription):
    """
    Log the prior row image of every update/delete on ``table`` into
    ``log_table``. Set ``create_log_table=False`` when several audited tables
    share one log table and function.
    """
    kind: ClassVar[str] = "json_audit_log"

    table: Any
    log_table: Any
    create_log_table: bool = True


@dataclass(frozen=True)
class OutboxRule(RuleDescription):
    kind: ClassVar[str] = "outbox"

    table: Any
    outbox_table: Any = None
    event_prefix: Optional[str] = None
    events: Tuple[str, ...] = ALL_EVENTS
    when: Optional[str] = None
    create_outbox_table: bool = True
    boolean_completed_column: bool = False
    uuid_primary_key: bool = False
    uuid_function: str = "gen_random_uuid"
    created_column: str = "created"
    updated_column: str = "updated"
    attempted_column: str = "attempted"
    attempts_column: str = "attempts"
    completed_column: str = "completed"
    event_type_column: str = "event_type"
    last_error_column: str = "last_error"
    data_before_column: str = "data_before"
    data_after_column: str = "data_after"
    metadata_column: str = "metadata"

    def __post_init__(self):
        if isinstance(self.events, (list, str)):
            events = [self.events] if isinstance(self.events, str) else self.events
            object.__setattr__(self, 'events', tuple(events))


@dataclass(frozen=True)
class CreatedAtRule(RuleDescription):
    """Set on insert, frozen afterwards."""
    kind: ClassVar[str] = "created_at"

    table: Any
    column: str


@dataclass(frozen=True)
class UpdatedAtRule(RuleDescription):
    kind: ClassVar[str] = "updated_at"

    table: Any
    column: str


@dataclass(frozen=True)
class ForceDefaultsRule(RuleDescription):
    """Overwrite the given columns with fixed values on every insert."""
    kind: ClassVar[str] = "force_defaults"

    table: Any
    defaults: Any

    def __post_init__(self):
        object.__setattr__(self, 'defaults', _pairs(self.defaults))


RULE_TYPES = (
    CounterCacheRule,
    SumCacheRule,
    SumThroughManyCacheRule,
    TouchRule,
    ImmutableRule,
    ForeignKeyArrayRule,
    JsonAuditLogRule,
    OutboxRule,
    CreatedAtRule,
    UpdatedAtRule,
    ForceDefaultsRule,
)

RULES_BY_KIND = {rule_type.kind: rule_type for rule_type in RULE_TYPES}
