"""Per-kind rule compilers. Each takes a rule and a CompileContext and returns a CompiledRule."""

from pgtriggers.compilers.base import CompileContext
from pgtriggers.compilers.caches import (
    compile_counter_cache, compile_sum_cache, compile_sum_through_many_cache,
)
from pgtriggers.compilers.capture import compile_json_audit_log, compile_outbox
from pgtriggers.compilers.integrity import compile_foreign_key_array, compile_immutable
from pgtriggers.compilers.timestamps import (
    compile_created_at, compile_force_defaults, compile_updated_at,
)
from pgtriggers.compilers.touch import compile_touch

__all__ = [
    'CompileContext',
    'compile_counter_cache',
    'compile_sum_cache',
    'compile_sum_through_many_cache',
    'compile_touch',
    'compile_immutable',
    'compile_foreign_key_array',
    'compile_json_audit_log',
    'compile_outbox',
    'compile_created_at',
    'compile_updated_at',
    'compile_force_defaults',
]
