#!/usr/bin/env python3
"""
Integrity Rule Compilers

- immutable columns: BEFORE UPDATE, raise when a protected column changes
  (NULL to NULL is not a change)
- foreign key arrays: BEFORE triggers on both sides of an array reference
"""

import logging

from pgtriggers.compilers.base import CompileContext, attach, message_text
from pgtriggers.plpgsql import if_block, trigger_body
from pgtriggers.references import TableRef
from pgtriggers.rules import ForeignKeyArrayRule, ImmutableRule
from pgtriggers.specs import DELETE, INSERT, UPDATE, CompiledRule, Timing

logger = logging.getLogger(__name__)


def _raise(ctx: CompileContext, message: str, *args: str) -> str:
    params = "".join(f", {arg}" for arg in args)
    return f"RAISE EXCEPTION {ctx.dialect.literal(message)}{params};"


def compile_immutable(rule: ImmutableRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.immutable(rule).with_overrides(rule.function_name, rule.trigger_name)
    table_name = message_text(TableRef.parse(rule.table).qualified_name)

    checks = []
    for column in rule.columns:
        quoted = ctx.q(column)
        message = f"Attempted {message_text(column)} update on {table_name}: Old: %, New: %"
        checks.append(if_block(
            f"NEW.{quoted} IS DISTINCT FROM OLD.{quoted}",
            _raise(ctx, message, f"OLD.{quoted}", f"NEW.{quoted}"),
        ))

    compiled = CompiledRule(rule)
    body = trigger_body(checks, depth_limit=ctx.depth_limit(rule))
    attach(compiled, names, rule.table, body, (UPDATE,), Timing.BEFORE)
    logger.debug(f"Compiled immutable {names.function}")
    return compiled


def compile_foreign_key_array(rule: ForeignKeyArrayRule, ctx: CompileContext) -> CompiledRule:
    """
    Owning side checks the new array for more than one dimension, duplicate
    elements and elements missing from the referenced column. Referenced side
    blocks deleting, or changing, a value some array still contains.
    """
    names, referenced_names = ctx.naming.foreign_key_array(rule)
    names = names.with_overrides(rule.function_name, rule.trigger_name)
    referenced_names = referenced_names.with_overrides(rule.referenced_function_name,
                                                       rule.referenced_trigger_name)

    table = ctx.table(rule.table)
    column = ctx.q(rule.column)
    referenced_table = ctx.table(rule.referenced_table)
    referenced_column = ctx.q(rule.referenced_column)
    depth_limit = ctx.depth_limit(rule)

    owner = message_text(f"{TableRef.parse(rule.table).qualified_name}.{rule.column}")
    referenced = message_text(
        f"{TableRef.parse(rule.referenced_table).qualified_name}.{rule.referenced_column}")

    owning_checks = [
        "arr := NEW." + column + ";",
        if_block("array_ndims(arr) > 1",
                 _raise(ctx, f"Foreign key array {owner} has more than 1 dimension: %, dimensions: %",
                        "arr", "array_ndims(arr)")),
        "SELECT count(*) INTO temp_count1 FROM unnest(arr);",
        "SELECT count(*) INTO temp_count2 FROM (SELECT DISTINCT * FROM unnest(arr)) AS t;",
        if_block("temp_count1 <> temp_count2",
                 _raise(ctx, f"Duplicate entry in foreign key array {owner}: %", "arr")),
        f"SELECT count(DISTINCT {referenced_table}.{referenced_column}) INTO temp_count2 "
        f"FROM {referenced_table} WHERE {referenced_table}.{referenced_column} = ANY(arr);",
        if_block("temp_count1 <> temp_count2",
                 _raise(ctx, f"Entry in foreign key array {owner} not in {referenced}: %", "arr")),
    ]
    declarations = [
        f"arr {table}.{column}%TYPE;",
        "temp_count1 int;",
        "temp_count2 int;",
    ]

    referenced_checks = [
        if_block("(TG_OP = 'UPDATE')",
                 if_block(f"(OLD.{referenced_column} IS NOT DISTINCT FROM NEW.{referenced_column})",
                          "RETURN NEW;")),
        if_block(f"EXISTS (SELECT 1 FROM {table} WHERE OLD.{referenced_column} = ANY({table}.{column}))",
                 _raise(ctx, f"Entry % in {referenced} still referenced by foreign key array {owner}",
                        f"OLD.{referenced_column}")),
    ]

    compiled = CompiledRule(rule)
    attach(compiled, names, rule.table,
           trigger_body(owning_checks, declarations, depth_limit=depth_limit),
           (INSERT, UPDATE), Timing.BEFORE)
    attach(compiled, referenced_names, rule.referenced_table,
           trigger_body(referenced_checks, depth_limit=depth_limit),
           (DELETE, UPDATE), Timing.BEFORE)
    logger.debug(f"Compiled foreign key array {names.function} / {referenced_names.function}")
    return compiled
