#!/usr/bin/env python3
"""
DDL Rendering

Turns compiled procedures, triggers and tables into PostgreSQL statements.
The installer hands database collaborators (name, body, options) triples;
the helpers here are what the concrete collaborators use to build SQL from
them, and what ``render_script`` uses for dry runs.

Procedure options: ``language``, ``returns``, ``replace``.
Trigger options: ``events``, ``timing``, ``row_level``, ``when``.
"""

from typing import Any, Dict, Iterable, List

from pgtriggers.naming import truncated
from pgtriggers.references import PostgresDialect, TableRef
from pgtriggers.specs import CompiledRule, ProcedureSpec, TableDefinition, Timing, TriggerSpec

_dialect = PostgresDialect()


def procedure_options(procedure: ProcedureSpec) -> Dict[str, Any]:
    return {
        'language': procedure.language,
        'returns': procedure.returns,
        'replace': procedure.replace,
    }


def trigger_options(trigger: TriggerSpec) -> Dict[str, Any]:
    return {
        'events': list(trigger.events),
        'timing': trigger.timing.value,
        'row_level': trigger.row_level,
        'when': trigger.when,
    }


def dollar_quote(body: str) -> str:
    """Wrap a function body in a dollar-quote tag that does not occur inside it."""
    tag = "$$"
    counter = 0
    while tag in body:
        counter += 1
        tag = f"$pgt{counter}$"
    return f"{tag}\n{body}\n{tag}"


def render_function(name: str, body: str, options: Dict[str, Any] = None) -> str:
    options = options or {}
    create = "CREATE OR REPLACE FUNCTION" if options.get('replace', True) else "CREATE FUNCTION"
    returns = options.get('returns', 'trigger')
    language = options.get('language', 'plpgsql')
    return (f"{create} {_dialect.quote_identifier(name)}() RETURNS {returns} "
            f"LANGUAGE {language} AS {dollar_quote(body)};")


def render_drop_function(name: str, if_exists: bool = True, cascade: bool = False) -> str:
    exists = "IF EXISTS " if if_exists else ""
    return f"DROP FUNCTION {exists}{_dialect.quote_identifier(name)}(){' CASCADE' if cascade else ''};"


def render_drop_trigger(table, name: str) -> str:
    return f"DROP TRIGGER IF EXISTS {_dialect.quote_identifier(name)} ON {_dialect.quote_schema_table(table)};"


def render_trigger(table, name: str, procedure: str, options: Dict[str, Any] = None) -> str:
    options = options or {}
    timing = Timing(options.get('timing', Timing.AFTER.value)).value.upper()
    events = " OR ".join(event.upper() for event in options.get('events', ()))
    level = "ROW" if options.get('row_level', True) else "STATEMENT"
    when = f" WHEN ({options['when']})" if options.get('when') else ""
    return (f"CREATE TRIGGER {_dialect.quote_identifier(name)} {timing} {events} "
            f"ON {_dialect.quote_schema_table(table)} FOR EACH {level}{when} "
            f"EXECUTE PROCEDURE {_dialect.quote_identifier(procedure)}();")


def index_name(table: TableRef, columns: Iterable[str]) -> str:
    return truncated(f"{table.name}_{'_'.join(columns)}_index")


def render_table(definition: TableDefinition) -> List[str]:
    """CREATE TABLE plus one CREATE INDEX per index; safe to re-run."""
    table = _dialect.quote_schema_table(definition.name)
    columns = []
    for column in definition.columns:
        parts = [_dialect.quote_identifier(column.name), column.type]
        if column.primary_key:
            parts.append("PRIMARY KEY")
        elif not column.nullable:
            parts.append("NOT NULL")
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        columns.append(" ".join(parts))

    statements = [f"CREATE TABLE IF NOT EXISTS {table} (\n  " + ",\n  ".join(columns) + "\n);"]
    for index in definition.indexes:
        direction = " DESC" if index.descending else ""
        indexed = ", ".join(f"{_dialect.quote_identifier(c)}{direction}" for c in index.columns)
        name = _dialect.quote_identifier(index_name(definition.name, index.columns))
        statements.append(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({indexed});")
    return statements


def render_compiled(compiled: CompiledRule) -> List[str]:
    """Every statement for one rule, in install order."""
    statements = []
    for table in compiled.tables:
        statements.extend(render_table(table))
    for procedure in compiled.procedures:
        statements.append(render_function(procedure.name, procedure.body, procedure_options(procedure)))
    for trigger in compiled.triggers:
        statements.append(render_drop_trigger(trigger.table, trigger.name))
        statements.append(render_trigger(trigger.table, trigger.name, trigger.procedure,
                                         trigger_options(trigger)))
    return statements


def render_script(compiled_rules: Iterable[CompiledRule]) -> str:
    blocks = []
    for compiled in compiled_rules:
        blocks.append(f"-- {compiled.rule.kind}\n" + "\n\n".join(render_compiled(compiled)))
    return "\n\n".join(blocks) + "\n"
