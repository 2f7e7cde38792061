"""BEFORE row triggers that assign columns on the incoming row."""

import logging

from pgtriggers.compilers.base import CompileContext, attach
from pgtriggers.plpgsql import trigger_body
from pgtriggers.rules import CreatedAtRule, ForceDefaultsRule, UpdatedAtRule
from pgtriggers.specs import INSERT, UPDATE, CompiledRule, Timing

logger = logging.getLogger(__name__)


def compile_created_at(rule: CreatedAtRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.created_at(rule).with_overrides(rule.function_name, rule.trigger_name)
    column = ctx.q(rule.column)
    statement = (
        "IF (TG_OP = 'UPDATE') THEN\n"
        f"  NEW.{column} := OLD.{column};\n"
        "ELSIF (TG_OP = 'INSERT') THEN\n"
        f"  NEW.{column} := CURRENT_TIMESTAMP;\n"
        "END IF;"
    )

    compiled = CompiledRule(rule)
    attach(compiled, names, rule.table, trigger_body([statement], depth_limit=ctx.depth_limit(rule)),
           (INSERT, UPDATE), Timing.BEFORE)
    logger.debug(f"Compiled created at {names.function}")
    return compiled


def compile_updated_at(rule: UpdatedAtRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.updated_at(rule).with_overrides(rule.function_name, rule.trigger_name)
    statement = f"NEW.{ctx.q(rule.column)} := CURRENT_TIMESTAMP;"

    compiled = CompiledRule(rule)
    attach(compiled, names, rule.table, trigger_body([statement], depth_limit=ctx.depth_limit(rule)),
           (INSERT, UPDATE), Timing.BEFORE)
    logger.debug(f"Compiled updated at {names.function}")
    return compiled


def compile_force_defaults(rule: ForceDefaultsRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.force_defaults(rule).with_overrides(rule.function_name, rule.trigger_name)
    statements = [f"NEW.{ctx.q(column)} := {ctx.dialect.literal(value)};" for column, value in rule.defaults]

    compiled = CompiledRule(rule)
    attach(compiled, names, rule.table, trigger_body(statements, depth_limit=ctx.depth_limit(rule)),
           (INSERT,), Timing.BEFORE)
    logger.debug(f"Compiled force defaults {names.function}")
    return compiled
