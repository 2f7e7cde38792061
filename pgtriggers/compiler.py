#!/usr/bin/env python3
"""
Trigger Compiler

Front door for turning rule descriptions into procedures, triggers and
tables. Compilation is a pure function of the rule: validate, dispatch on the
rule type, then check the generated names for collisions.
"""

import logging
from typing import Iterable, List, Optional

from pgtriggers.compilers import (
    CompileContext, compile_counter_cache, compile_created_at,
    compile_force_defaults, compile_foreign_key_array, compile_immutable,
    compile_json_audit_log, compile_outbox, compile_sum_cache,
    compile_sum_through_many_cache, compile_touch, compile_updated_at,
)
from pgtriggers.errors import CompileError
from pgtriggers.guards import check_depth_limit
from pgtriggers.naming import NamingPolicy
from pgtriggers.references import PostgresDialect
from pgtriggers.rules import (
    CounterCacheRule, CreatedAtRule, ForceDefaultsRule, ForeignKeyArrayRule,
    ImmutableRule, JsonAuditLogRule, OutboxRule, RuleDescription, SumCacheRule,
    SumThroughManyCacheRule, TouchRule, UpdatedAtRule,
)
from pgtriggers.specs import CompiledRule
from pgtriggers.validation import validate_batch, validate_compiled, validate_rule

logger = logging.getLogger(__name__)

COMPILERS = {
    CounterCacheRule: compile_counter_cache,
    SumCacheRule: compile_sum_cache,
    SumThroughManyCacheRule: compile_sum_through_many_cache,
    TouchRule: compile_touch,
    ImmutableRule: compile_immutable,
    ForeignKeyArrayRule: compile_foreign_key_array,
    JsonAuditLogRule: compile_json_audit_log,
    OutboxRule: compile_outbox,
    CreatedAtRule: compile_created_at,
    UpdatedAtRule: compile_updated_at,
    ForceDefaultsRule: compile_force_defaults,
}


class TriggerCompiler:
    """
    Compiles rule descriptions for one dialect.

    ``default_depth_limit`` applies a recursion guard to every rule that does
    not set its own ``trigger_depth_limit``.
    """

    def __init__(self, dialect: Optional[PostgresDialect] = None,
                 naming: Optional[NamingPolicy] = None,
                 default_depth_limit: Optional[int] = None):
        self.dialect = dialect or PostgresDialect()
        self.naming = naming or NamingPolicy(self.dialect)
        self.default_depth_limit = check_depth_limit(default_depth_limit, 'default_depth_limit')
        self.context = CompileContext(self.dialect, self.naming, self.default_depth_limit)

    def compile(self, rule: RuleDescription) -> CompiledRule:
        compile_rule = COMPILERS.get(type(rule))
        if compile_rule is None:
            raise CompileError(f"Unsupported rule type: {type(rule).__name__}",
                               {'rule_type': type(rule).__name__})

        validate_rule(rule)
        compiled = compile_rule(rule, self.context)
        validate_compiled(compiled)

        logger.debug(f"Compiled {rule.kind} rule: "
                     f"{[p.name for p in compiled.procedures]} / {[t.name for t in compiled.triggers]}")
        return compiled

    def compile_all(self, rules: Iterable[RuleDescription]) -> List[CompiledRule]:
        """
        Compile every rule before returning, so one bad rule fails the whole
        batch. Names are also checked across the batch.
        """
        compiled_rules = [self.compile(rule) for rule in rules]
        validate_batch(compiled_rules)
        return compiled_rules


def compile_rule(rule: RuleDescription, **kwargs) -> CompiledRule:
    """Convenience wrapper using a default compiler."""
    return TriggerCompiler(**kwargs).compile(rule)
