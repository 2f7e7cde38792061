#!/usr/bin/env python3
"""
Touch propagation: when a row of the watched table changes, bump the
timestamp column on every related row of the touch table.

The generated UPDATE skips rows whose timestamp is already
CURRENT_TIMESTAMP, which is what stops two tables that touch each other from
recursing: inside one transaction the second round finds nothing to change.
``hop_limit`` adds a hard depth cap on top of that.
"""

import logging

from pgtriggers.compilers.base import CompileContext, attach
from pgtriggers.plpgsql import if_block, trigger_body
from pgtriggers.references import NEW, OLD
from pgtriggers.rules import TouchRule
from pgtriggers.specs import ALL_EVENTS, CompiledRule, Timing

logger = logging.getLogger(__name__)


def compile_touch(rule: TouchRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.touch(rule).with_overrides(rule.function_name, rule.trigger_name)

    touch_table = ctx.table(rule.touch_table)
    column = ctx.q(rule.column)
    mapping = [(ctx.q(touch_column), ctx.q(main_column)) for touch_column, main_column in rule.expr]

    def touch_from(row: str) -> str:
        match = " AND ".join(f"{touch_column} = {row}.{main_column}" for touch_column, main_column in mapping)
        return (
            f"UPDATE {touch_table} SET {column} = CURRENT_TIMESTAMP "
            f"WHERE {match} AND (({column} <> CURRENT_TIMESTAMP) OR ({column} IS NULL));"
        )

    same_key = " AND ".join(f"NEW.{main_column} IS NOT DISTINCT FROM OLD.{main_column}"
                            for _, main_column in mapping)
    changed = "\n".join([
        if_block("(TG_OP = 'INSERT' OR TG_OP = 'UPDATE')", touch_from(NEW)),
        if_block("(TG_OP = 'DELETE' OR TG_OP = 'UPDATE')", touch_from(OLD)),
    ])
    statement = if_block(f"(TG_OP = 'UPDATE' AND ({same_key}))", touch_from(NEW), changed)

    compiled = CompiledRule(rule)
    body = trigger_body([statement], depth_limit=ctx.depth_limit(rule, rule.hop_limit))
    attach(compiled, names, rule.main_table, body, ALL_EVENTS, Timing.AFTER)
    logger.debug(f"Compiled touch {names.function}")
    return compiled
