#!/usr/bin/env python3
"""
Delta Primitive

Every aggregate cache is an instance of one rule:

- insert: add the new delta under the new key
- delete: subtract the old delta under the old key
- update with the key unchanged (NULL = NULL counts as unchanged): nothing,
  or for row-dependent deltas one ``agg = agg + new - old`` statement
- update with the key changed: subtract under the old key and add under the
  new key, each only when that key is non-NULL

The unchanged-key test short-circuits before either branch runs. Each logical
delta is a single UPDATE statement so the aggregate is never read and then
written back.
"""

from dataclasses import dataclass
from typing import Callable, Tuple

from pgtriggers.plpgsql import if_block
from pgtriggers.references import NEW, OLD

# Given a row qualifier (NEW/OLD) return rendered SQL for that row image
RowRenderer = Callable[[str], str]


@dataclass(frozen=True)
class DeltaPrimitive:
    """
    target_table / aggregate_column: quoted target of the UPDATE
    key_columns: quoted key columns on the source row; NULL keys never participate
    delta: rendered delta for a row image
    condition: rendered WHERE clause selecting the target rows for a row image
    combine_on_same_key: emit ``agg + new - old`` when the key is unchanged
    """
    target_table: str
    aggregate_column: str
    key_columns: Tuple[str, ...]
    delta: RowRenderer
    condition: RowRenderer
    combine_on_same_key: bool = False

    def same_key(self) -> str:
        return " AND ".join(f"NEW.{k} IS NOT DISTINCT FROM OLD.{k}" for k in self.key_columns)

    def key_present(self, row: str) -> str:
        return " AND ".join(f"{row}.{k} IS NOT NULL" for k in self.key_columns)

    def update(self, expression: str, row: str) -> str:
        agg = self.aggregate_column
        return f"UPDATE {self.target_table} SET {agg} = {agg} {expression} WHERE {self.condition(row)};"

    def add(self) -> str:
        return self.update(f"+ {self.delta(NEW)}", NEW)

    def subtract(self) -> str:
        return self.update(f"- {self.delta(OLD)}", OLD)

    def combined(self) -> str:
        return self.update(f"+ {self.delta(NEW)} - {self.delta(OLD)}", NEW)

    def render(self) -> str:
        unchanged = self.combined() if self.combine_on_same_key else ""
        changed = "\n".join([
            if_block(f"((TG_OP = 'INSERT' OR TG_OP = 'UPDATE') AND {self.key_present(NEW)})", self.add()),
            if_block(f"((TG_OP = 'DELETE' OR TG_OP = 'UPDATE') AND {self.key_present(OLD)})", self.subtract()),
        ])
        return if_block(f"(TG_OP = 'UPDATE' AND ({self.same_key()}))", unchanged, changed)


def constant(value: str) -> RowRenderer:
    """Delta that does not depend on the row (counter caches)."""
    return lambda row: value
