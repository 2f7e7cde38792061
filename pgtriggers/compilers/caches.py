#!/usr/bin/env python3
"""
Aggregate cache compilers: counter cache, sum cache and sum through a join
table. All three are AFTER row triggers built on the Delta Primitive.
"""

import logging

from pgtriggers.compilers.base import CompileContext, attach
from pgtriggers.delta import DeltaPrimitive, constant
from pgtriggers.plpgsql import trigger_body
from pgtriggers.rules import CounterCacheRule, SumCacheRule, SumThroughManyCacheRule
from pgtriggers.specs import ALL_EVENTS, CompiledRule, Timing

logger = logging.getLogger(__name__)


def summed_value(ctx: CompileContext, column):
    """Row renderer for a summed column or expression. NULL sums as 0."""
    def render(row: str) -> str:
        return f"COALESCE({ctx.dialect.qualified(column, row)}, 0)"
    return render


def compile_counter_cache(rule: CounterCacheRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.counter_cache(rule).with_overrides(rule.function_name, rule.trigger_name)

    main_table = ctx.table(rule.main_table)
    main_column = ctx.q(rule.main_table_id_column)
    key = ctx.q(rule.counted_table_id_column)

    delta = DeltaPrimitive(
        target_table=main_table,
        aggregate_column=ctx.q(rule.counter_column),
        key_columns=(key,),
        delta=constant("1"),
        condition=lambda row: f"{main_column} = {row}.{key}",
    )

    compiled = CompiledRule(rule)
    body = trigger_body([delta.render()], depth_limit=ctx.depth_limit(rule))
    attach(compiled, names, rule.counted_table, body, ALL_EVENTS, Timing.AFTER)
    logger.debug(f"Compiled counter cache {names.function}")
    return compiled


def compile_sum_cache(rule: SumCacheRule, ctx: CompileContext) -> CompiledRule:
    names = ctx.naming.sum_cache(rule).with_overrides(rule.function_name, rule.trigger_name)

    main_table = ctx.table(rule.main_table)
    main_column = ctx.q(rule.main_table_id_column)
    key = ctx.q(rule.summed_table_id_column)

    delta = DeltaPrimitive(
        target_table=main_table,
        aggregate_column=ctx.q(rule.sum_column),
        key_columns=(key,),
        delta=summed_value(ctx, rule.summed_column),
        condition=lambda row: f"{main_column} = {row}.{key}",
        combine_on_same_key=True,
    )

    compiled = CompiledRule(rule)
    body = trigger_body([delta.render()], depth_limit=ctx.depth_limit(rule))
    attach(compiled, names, rule.summed_table, body, ALL_EVENTS, Timing.AFTER)
    logger.debug(f"Compiled sum cache {names.function}")
    return compiled


def compile_sum_through_many_cache(rule: SumThroughManyCacheRule, ctx: CompileContext) -> CompiledRule:
    """
    Two cooperating procedures:

    - on the summed table, adjust every main row linked through the join
      table as it stands when the trigger fires
    - on the join table, move the summed value between main rows when a
      link is added, removed or re-pointed; the summed value is fetched from
      the summed table because the join row does not carry it
    """
    summed_names, join_names = ctx.naming.sum_through_many_cache(rule)
    summed_names = summed_names.with_overrides(rule.function_name, rule.trigger_name)
    join_names = join_names.with_overrides(rule.join_function_name, rule.join_trigger_name)

    main_table = ctx.table(rule.main_table)
    main_id = ctx.q(rule.main_table_id_column)
    sum_column = ctx.q(rule.sum_column)
    summed_table = ctx.table(rule.summed_table)
    summed_id = ctx.q(rule.summed_table_id_column)
    join_table = ctx.table(rule.join_table)
    main_fk = ctx.q(rule.main_table_fk_column)
    summed_fk = ctx.q(rule.summed_table_fk_column)
    depth_limit = ctx.depth_limit(rule)

    summed_side = DeltaPrimitive(
        target_table=main_table,
        aggregate_column=sum_column,
        key_columns=(summed_id,),
        delta=summed_value(ctx, rule.summed_column),
        condition=lambda row: (
            f"{main_id} IN (SELECT {main_fk} FROM {join_table} WHERE {summed_fk} = {row}.{summed_id})"
        ),
        combine_on_same_key=True,
    )

    join_value = ctx.dialect.qualified(rule.summed_column, summed_table)
    join_side = DeltaPrimitive(
        target_table=main_table,
        aggregate_column=sum_column,
        key_columns=(main_fk, summed_fk),
        delta=lambda row: (
            f"COALESCE((SELECT SUM({join_value}) FROM {summed_table} "
            f"WHERE {summed_table}.{summed_id} = {row}.{summed_fk}), 0)"
        ),
        condition=lambda row: f"{main_id} = {row}.{main_fk}",
    )

    compiled = CompiledRule(rule)
    attach(compiled, summed_names, rule.summed_table,
           trigger_body([summed_side.render()], depth_limit=depth_limit), ALL_EVENTS, Timing.AFTER)
    attach(compiled, join_names, rule.join_table,
           trigger_body([join_side.render()], depth_limit=depth_limit), ALL_EVENTS, Timing.AFTER)
    logger.debug(f"Compiled sum through many cache {summed_names.function} / {join_names.function}")
    return compiled
