"""
pgtriggers - compile relational integrity rules into PostgreSQL triggers

Aggregate caches, touch propagation, immutable columns, foreign key arrays,
audit logs and outboxes, maintained by generated PL/pgSQL procedures.
"""

__version__ = "1.0.0"

from pgtriggers.compiler import TriggerCompiler, compile_rule
from pgtriggers.config import TriggerConfig
from pgtriggers.errors import (
    CompileError, ConfigurationError, ErrorCode, InstallError, RuleFileError, TriggerError,
)
from pgtriggers.installer import Installer, install
from pgtriggers.loader import load_rule_file, load_rules
from pgtriggers.naming import NamingPolicy, ObjectNames
from pgtriggers.references import (
    BinaryOp, Case, Column, Func, Literal, PostgresDialect, Raw, TableRef,
)
from pgtriggers.rules import (
    CounterCacheRule, CreatedAtRule, ForceDefaultsRule, ForeignKeyArrayRule,
    ImmutableRule, JsonAuditLogRule, OutboxRule, SumCacheRule,
    SumThroughManyCacheRule, TouchRule, UpdatedAtRule,
)
from pgtriggers.specs import CompiledRule, ProcedureSpec, TableDefinition, Timing, TriggerSpec

__all__ = [
    'TriggerCompiler', 'compile_rule', 'Installer', 'install',
    'TriggerConfig', 'load_rule_file', 'load_rules',
    'NamingPolicy', 'ObjectNames', 'PostgresDialect', 'TableRef',
    'Column', 'Literal', 'Raw', 'Func', 'BinaryOp', 'Case',
    'CounterCacheRule', 'SumCacheRule', 'SumThroughManyCacheRule', 'TouchRule',
    'ImmutableRule', 'ForeignKeyArrayRule', 'JsonAuditLogRule', 'OutboxRule',
    'CreatedAtRule', 'UpdatedAtRule', 'ForceDefaultsRule',
    'CompiledRule', 'ProcedureSpec', 'TriggerSpec', 'TableDefinition', 'Timing',
    'TriggerError', 'ConfigurationError', 'CompileError', 'InstallError', 'RuleFileError', 'ErrorCode',
]
