#!/usr/bin/env python3
"""
Naming Policy

Default function/trigger names for every rule kind. These names are a
compatibility contract with databases that already have the triggers
installed: changing one breaks upgrade-in-place, so every format here is
pinned by tests.

Names are ``pgt_<kind>_`` followed by ``__``-joined parts. Table parts are
mangled: quoted schema-qualified form, quotes stripped, every other
non-alphanumeric character replaced by ``_``, runs of ``_`` collapsed.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from pgtriggers.references import Expression, PostgresDialect, TableRef

PREFIX = "pgt"

# PostgreSQL NAMEDATALEN - 1; longer identifiers are silently truncated
MAX_IDENTIFIER_BYTES = 63

_NON_ALNUM = re.compile(r'[^A-Za-z0-9]')
_UNDERSCORE_RUNS = re.compile(r'_+')


@dataclass(frozen=True)
class ObjectNames:
    function: str
    trigger: str

    def with_overrides(self, function: Optional[str] = None, trigger: Optional[str] = None) -> 'ObjectNames':
        return ObjectNames(function or self.function, trigger or self.trigger)


def truncated(name: str) -> str:
    """The name PostgreSQL will actually store."""
    encoded = name.encode('utf-8')
    if len(encoded) <= MAX_IDENTIFIER_BYTES:
        return name
    return encoded[:MAX_IDENTIFIER_BYTES].decode('utf-8', errors='ignore')


class NamingPolicy:
    def __init__(self, dialect: Optional[PostgresDialect] = None):
        self.dialect = dialect or PostgresDialect()

    def mangle(self, text: str) -> str:
        text = text.replace('"', '')
        return _UNDERSCORE_RUNS.sub('_', _NON_ALNUM.sub('_', text))

    def mangle_table(self, table: Any) -> str:
        return self.mangle(self.dialect.quote_schema_table(TableRef.parse(table)))

    def column_part(self, column: Any) -> str:
        if isinstance(column, Expression):
            return self.mangle(column.render(self.dialect))
        return str(column)

    def join(self, kind: str, *parts: str) -> str:
        return f"{PREFIX}_{kind}_" + "__".join(parts)

    # ------------------------------------------------------------------
    # Per-kind defaults
    # ------------------------------------------------------------------

    def counter_cache(self, rule) -> ObjectNames:
        main = self.mangle_table(rule.main_table)
        return ObjectNames(
            function=self.join("cc", main, rule.main_table_id_column, rule.counter_column,
                               self.mangle_table(rule.counted_table), rule.counted_table_id_column),
            trigger=self.join("cc", main, rule.main_table_id_column, rule.counter_column,
                              rule.counted_table_id_column),
        )

    def sum_cache(self, rule) -> ObjectNames:
        main = self.mangle_table(rule.main_table)
        return ObjectNames(
            function=self.join("sc", main, rule.main_table_id_column, rule.sum_column,
                               self.mangle_table(rule.summed_table), rule.summed_table_id_column,
                               self.column_part(rule.summed_column)),
            trigger=self.join("sc", main, rule.main_table_id_column, rule.sum_column,
                              rule.summed_table_id_column),
        )

    def sum_through_many_cache(self, rule) -> Tuple[ObjectNames, ObjectNames]:
        """Names for (summed-table side, join-table side)."""
        main = self.mangle_table(rule.main_table)
        summed_column = self.column_part(rule.summed_column)
        function_parts = (main, rule.main_table_id_column, rule.sum_column,
                          self.mangle_table(rule.summed_table), rule.summed_table_id_column,
                          summed_column, self.mangle_table(rule.join_table),
                          rule.main_table_fk_column, rule.summed_table_fk_column)
        trigger_parts = (main, rule.main_table_id_column, rule.sum_column,
                         rule.summed_table_id_column, summed_column,
                         rule.main_table_fk_column, rule.summed_table_fk_column)
        return (
            ObjectNames(self.join("stmc", *function_parts), self.join("stmc", *trigger_parts)),
            ObjectNames(self.join("stmc_join", *function_parts), self.join("stmc_join", *trigger_parts)),
        )

    def touch(self, rule) -> ObjectNames:
        name = self.join("t", self.mangle_table(rule.main_table), self.mangle_table(rule.touch_table))
        return ObjectNames(name, name)

    def immutable(self, rule) -> ObjectNames:
        columns = [str(c) for c in rule.columns]
        return ObjectNames(
            function=self.join("im", self.mangle_table(rule.table), *columns),
            trigger=self.join("im", *columns),
        )

    def created_at(self, rule) -> ObjectNames:
        return ObjectNames(self.join("ca", self.mangle_table(rule.table), rule.column),
                           self.join("ca", rule.column))

    def updated_at(self, rule) -> ObjectNames:
        return ObjectNames(self.join("ua", self.mangle_table(rule.table), rule.column),
                           self.join("ua", rule.column))

    def force_defaults(self, rule) -> ObjectNames:
        name = self.join("fd", self.mangle_table(rule.table))
        return ObjectNames(name, name)

    def foreign_key_array(self, rule) -> Tuple[ObjectNames, ObjectNames]:
        """Names for (owning table side, referenced table side)."""
        table = self.mangle_table(rule.table)
        return (
            ObjectNames(self.join("fka", table, rule.column), self.join("fka", rule.column)),
            ObjectNames(self.join("rfka", table, rule.column), self.join("rfka", rule.column)),
        )

    def json_audit_log(self, rule) -> ObjectNames:
        return ObjectNames(
            function=self.join("jal", self.mangle_table(rule.log_table)),
            trigger=self.join("jal", self.mangle_table(rule.table)),
        )

    def outbox(self, rule) -> ObjectNames:
        name = self.join("outbox", self.mangle_table(rule.table))
        return ObjectNames(name, name)
