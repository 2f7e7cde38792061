"""Shared plumbing for the per-kind rule compilers."""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from pgtriggers.guards import effective_depth_limit
from pgtriggers.naming import NamingPolicy, ObjectNames
from pgtriggers.references import PostgresDialect, TableRef
from pgtriggers.specs import CompiledRule, ProcedureSpec, Timing, TriggerSpec


@dataclass(frozen=True)
class CompileContext:
    dialect: PostgresDialect = field(default_factory=PostgresDialect)
    naming: NamingPolicy = None
    default_depth_limit: Optional[int] = None

    def __post_init__(self):
        if self.naming is None:
            object.__setattr__(self, 'naming', NamingPolicy(self.dialect))

    def depth_limit(self, rule, *extra: Optional[int]) -> Optional[int]:
        limit = rule.trigger_depth_limit
        if limit is None:
            limit = self.default_depth_limit
        return effective_depth_limit(limit, *extra)

    def q(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def table(self, ref) -> str:
        return self.dialect.quote_schema_table(ref)


def attach(compiled: CompiledRule, names: ObjectNames, table, body: str,
           events: Iterable[str], timing: Timing, when: Optional[str] = None) -> None:
    """Add a procedure and the row-level trigger that calls it."""
    table = TableRef.parse(table)
    compiled.procedures.append(ProcedureSpec(names.function, table, body))
    compiled.triggers.append(TriggerSpec(
        name=names.trigger,
        table=table,
        procedure=names.function,
        events=tuple(events),
        timing=timing,
        when=when,
    ))


def message_text(text: str) -> str:
    """Escape a RAISE format fragment so ``%`` is not read as a placeholder."""
    return text.replace('%', '%%')
