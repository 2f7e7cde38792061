#!/usr/bin/env python3
"""
Change Capture Compilers

Both rule kinds record row images as JSONB in a side table:

- json audit log: the prior image of every updated/deleted row, tagged with
  transaction id, user, schema, table and operation
- outbox: one event row per insert/update/delete for an external consumer
  to pick up, with attempt bookkeeping columns the consumer maintains
"""

import logging

from pgtriggers.compilers.base import CompileContext, attach
from pgtriggers.plpgsql import trigger_body
from pgtriggers.references import TableRef
from pgtriggers.rules import JsonAuditLogRule, OutboxRule
from pgtriggers.specs import (
    DELETE, INSERT, UPDATE, ColumnDefinition, CompiledRule, IndexDefinition,
    TableDefinition, Timing,
)

logger = logging.getLogger(__name__)

TIMESTAMP_TYPE = "TIMESTAMPTZ"
JSON_TYPE = "JSONB"


def audit_log_table(log_table) -> TableDefinition:
    return TableDefinition(
        name=TableRef.parse(log_table),
        columns=(
            ColumnDefinition("txid", "BIGINT", nullable=False),
            ColumnDefinition("at", TIMESTAMP_TYPE, default="CURRENT_TIMESTAMP"),
            ColumnDefinition("user", "TEXT", nullable=False),
            ColumnDefinition("schema", "TEXT", nullable=False),
            ColumnDefinition("table", "TEXT", nullable=False),
            ColumnDefinition("action", "TEXT", nullable=False),
            ColumnDefinition("prior", JSON_TYPE, nullable=False),
        ),
        indexes=(IndexDefinition(("txid",)),),
    )


def compile_json_audit_log(rule: JsonAuditLogRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.json_audit_log(rule).with_overrides(rule.function_name, rule.trigger_name)

    columns = ", ".join(ctx.q(c) for c in ("txid", "at", "user", "schema", "table", "action", "prior"))
    insert = (
        f"INSERT INTO {ctx.table(rule.log_table)} ({columns}) VALUES "
        "(txid_current(), CURRENT_TIMESTAMP, CURRENT_USER, TG_TABLE_SCHEMA, TG_TABLE_NAME, "
        "TG_OP, to_jsonb(OLD));"
    )

    compiled = CompiledRule(rule)
    if rule.create_log_table:
        compiled.tables.append(audit_log_table(rule.log_table))
    body = trigger_body([insert], depth_limit=ctx.depth_limit(rule))
    attach(compiled, names, rule.table, body, (UPDATE, DELETE), Timing.AFTER)
    logger.debug(f"Compiled json audit log {names.function} -> {rule.log_table}")
    return compiled


def outbox_table_ref(rule: OutboxRule) -> TableRef:
    if rule.outbox_table is not None:
        return TableRef.parse(rule.outbox_table)
    source = TableRef.parse(rule.table)
    return TableRef(name=f"{source.name}_outbox", schema=source.schema)


def outbox_table(rule: OutboxRule) -> TableDefinition:
    if rule.uuid_primary_key:
        key = ColumnDefinition("id", "UUID", nullable=False, primary_key=True,
                               default=f"{rule.uuid_function}()")
    else:
        key = ColumnDefinition("id", "SERIAL", nullable=False, primary_key=True)

    if rule.boolean_completed_column:
        completed = ColumnDefinition(rule.completed_column, "BOOLEAN", nullable=False, default="FALSE")
    else:
        completed = ColumnDefinition(rule.completed_column, TIMESTAMP_TYPE)

    return TableDefinition(
        name=outbox_table_ref(rule),
        columns=(
            key,
            ColumnDefinition(rule.attempts_column, "INTEGER", nullable=False, default="0"),
            ColumnDefinition(rule.created_column, TIMESTAMP_TYPE, default="CURRENT_TIMESTAMP"),
            ColumnDefinition(rule.updated_column, TIMESTAMP_TYPE),
            ColumnDefinition(rule.attempted_column, TIMESTAMP_TYPE),
            completed,
            ColumnDefinition(rule.event_type_column, "TEXT", nullable=False),
            ColumnDefinition(rule.last_error_column, "TEXT"),
            ColumnDefinition(rule.data_before_column, JSON_TYPE),
            ColumnDefinition(rule.data_after_column, JSON_TYPE),
            ColumnDefinition(rule.metadata_column, JSON_TYPE),
        ),
        indexes=(
            IndexDefinition((rule.created_column,)),
            IndexDefinition((rule.attempts_column,), descending=True),
        ),
    )


def compile_outbox(rule: OutboxRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.outbox(rule).with_overrides(rule.function_name, rule.trigger_name)

    target = ctx.table(outbox_table_ref(rule))
    prefix = rule.event_prefix or TableRef.parse(rule.table).name
    event_type = ctx.q(rule.event_type_column)
    before = ctx.q(rule.data_before_column)
    after = ctx.q(rule.data_after_column)

    inserts = {
        INSERT: (f"INSERT INTO {target} ({event_type}, {after}) VALUES "
                 f"({ctx.dialect.literal(prefix + '_created')}, to_jsonb(NEW));"),
        UPDATE: (f"INSERT INTO {target} ({event_type}, {before}, {after}) VALUES "
                 f"({ctx.dialect.literal(prefix + '_updated')}, to_jsonb(OLD), to_jsonb(NEW));"),
        DELETE: (f"INSERT INTO {target} ({event_type}, {before}) VALUES "
                 f"({ctx.dialect.literal(prefix + '_deleted')}, to_jsonb(OLD));"),
    }

    lines = []
    for event in rule.events:
        keyword = "IF" if not lines else "ELSIF"
        lines.append(f"{keyword} (TG_OP = '{event.upper()}') THEN")
        lines.append(f"  {inserts[event]}")
    lines.append("END IF;")

    compiled = CompiledRule(rule)
    if rule.create_outbox_table:
        compiled.tables.append(outbox_table(rule))
    body = trigger_body(["\n".join(lines)], depth_limit=ctx.depth_limit(rule))
    attach(compiled, names, rule.table, body, rule.events, Timing.AFTER, when=rule.when)
    logger.debug(f"Compiled outbox {names.function} -> {target}")
    return compiled
