#!/usr/bin/env python3
"""
Reference Resolver

Turns logical table/column references and value expressions into the textual
form used inside generated PL/pgSQL bodies.

A column parameter anywhere in the rule descriptions may be a bare column name
or an arbitrary value expression. Expressions are small immutable trees;
``qualify()`` returns a copy where every unqualified column is bound to a row
image (``NEW``/``OLD``) or to a table, so ``CASE amount WHEN 0 THEN 0 ELSE 1
END`` becomes ``CASE NEW."amount" WHEN 0 THEN 0 ELSE 1 END`` inside a trigger.
"""

import datetime
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Tuple, Union

from pgtriggers.errors import CompileError, ConfigurationError

# Row image qualifiers supplied by the trigger environment
NEW = "NEW"
OLD = "OLD"

# Stands for the row image (or table) inside Raw SQL
ROW_PLACEHOLDER = "{row}"

# Function names and operators are emitted verbatim, so keep them tight
FUNCTION_NAME_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_.]*$')
ALLOWED_OPERATORS = {
    '+', '-', '*', '/', '%', '||',
    '=', '<>', '!=', '<', '<=', '>', '>=',
    'AND', 'OR', 'IS DISTINCT FROM', 'IS NOT DISTINCT FROM',
}


@dataclass(frozen=True)
class TableRef:
    """Schema-qualified table name. Identity is the qualified name."""
    name: str
    schema: Optional[str] = None

    @classmethod
    def parse(cls, value: Union['TableRef', str]) -> 'TableRef':
        """Accept a TableRef or a ``"table"``/``"schema.table"`` string."""
        if isinstance(value, TableRef):
            return value
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"Invalid table reference: {value!r}")
        if '.' in value:
            schema, name = value.split('.', 1)
            return cls(name=name, schema=schema)
        return cls(name=value)

    @property
    def qualified_name(self) -> str:
        if self.schema:
            return f"{self.schema}.{self.name}"
        return self.name

    def __str__(self) -> str:
        return self.qualified_name


class Expression:
    """Base class for value expressions usable wherever a column is."""

    def qualify(self, qualifier: str) -> 'Expression':
        return self

    def render(self, dialect: 'PostgresDialect') -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Column(Expression):
    name: str
    qualifier: Optional[str] = None

    def qualify(self, qualifier: str) -> 'Column':
        if self.qualifier is not None:
            return self
        return Column(self.name, qualifier)

    def render(self, dialect: 'PostgresDialect') -> str:
        quoted = dialect.quote_identifier(self.name)
        if self.qualifier:
            return f"{self.qualifier}.{quoted}"
        return quoted


@dataclass(frozen=True)
class Literal(Expression):
    value: Any

    def render(self, dialect: 'PostgresDialect') -> str:
        return dialect.literal(self.value)


@dataclass(frozen=True)
class Raw(Expression):
    """
    Verbatim SQL; the caller owns its correctness.

    Write ``{row}`` wherever the row is meant: ``Raw("{row}.amount * 2")``
    renders ``NEW.amount * 2`` against the new row image and
    ``"children".amount * 2`` against a table. Unqualified, ``{row}.`` is
    dropped.
    """
    sql: str

    @property
    def references_row(self) -> bool:
        return ROW_PLACEHOLDER in self.sql

    def qualify(self, qualifier: str) -> 'Raw':
        return Raw(self.sql.replace(ROW_PLACEHOLDER, qualifier))

    def render(self, dialect: 'PostgresDialect') -> str:
        return self.sql.replace(ROW_PLACEHOLDER + ".", "")


@dataclass(frozen=True)
class Func(Expression):
    """
    ``name(args...)``. String arguments name columns, as on the left of a
    BinaryOp; pass ``Literal("text")`` for a string constant.
    """
    name: str
    args: Tuple[Expression, ...] = ()

    def __post_init__(self):
        if not isinstance(self.name, str) or not FUNCTION_NAME_PATTERN.match(self.name):
            raise ConfigurationError(f"Invalid function name: {self.name!r}")
        args = tuple(as_expression(a) if isinstance(a, str) else as_value(a) for a in self.args)
        object.__setattr__(self, 'args', args)

    def qualify(self, qualifier: str) -> 'Func':
        return Func(self.name, tuple(a.qualify(qualifier) for a in self.args))

    def render(self, dialect: 'PostgresDialect') -> str:
        return f"{self.name}({', '.join(a.render(dialect) for a in self.args)})"


@dataclass(frozen=True)
class BinaryOp(Expression):
    """``left op right``. A string on the left names a column; on the right it is a literal."""
    op: str
    left: Any
    right: Any

    def __post_init__(self):
        if self.op.upper() not in ALLOWED_OPERATORS:
            raise ConfigurationError(f"Unsupported operator: {self.op!r}")
        object.__setattr__(self, 'left', as_expression(self.left))
        object.__setattr__(self, 'right', as_value(self.right))

    def qualify(self, qualifier: str) -> 'BinaryOp':
        return BinaryOp(self.op, self.left.qualify(qualifier), self.right.qualify(qualifier))

    def render(self, dialect: 'PostgresDialect') -> str:
        return f"({self.left.render(dialect)} {self.op} {self.right.render(dialect)})"


@dataclass(frozen=True)
class Case(Expression):
    """
    CASE expression. ``whens`` is a sequence of (condition, result) pairs.
    With an ``operand`` the conditions are compared against it
    (``CASE operand WHEN value THEN ...``).
    """
    whens: Tuple[Tuple[Any, Any], ...]
    else_: Any = None
    operand: Any = None

    def __post_init__(self):
        if not self.whens:
            raise ConfigurationError("CASE expression requires at least one WHEN clause")
        whens = tuple((as_value(c), as_value(r)) for c, r in self.whens)
        object.__setattr__(self, 'whens', whens)
        object.__setattr__(self, 'else_', as_value(self.else_))
        if self.operand is not None:
            object.__setattr__(self, 'operand', as_expression(self.operand))

    def qualify(self, qualifier: str) -> 'Case':
        return Case(
            tuple((c.qualify(qualifier), r.qualify(qualifier)) for c, r in self.whens),
            self.else_.qualify(qualifier),
            self.operand.qualify(qualifier) if self.operand is not None else None,
        )

    def render(self, dialect: 'PostgresDialect') -> str:
        parts = ["(CASE"]
        if self.operand is not None:
            parts.append(self.operand.render(dialect))
        for condition, result in self.whens:
            parts.append(f"WHEN {condition.render(dialect)} THEN {result.render(dialect)}")
        parts.append(f"ELSE {self.else_.render(dialect)} END)")
        return " ".join(parts)


def as_expression(value: Any) -> Expression:
    """Column-position coercion: strings name columns."""
    if isinstance(value, Expression):
        return value
    if isinstance(value, str):
        if not value:
            raise ConfigurationError("Column name must not be empty")
        return Column(value)
    raise ConfigurationError(f"Expected a column name or expression, got {value!r}")


def as_value(value: Any) -> Expression:
    """Value-position coercion: anything that is not an expression is a literal."""
    if isinstance(value, Expression):
        return value
    return Literal(value)


class PostgresDialect:
    """
    Quoting collaborator for PostgreSQL.

    The compiler never emits a raw identifier; everything goes through
    ``quote_identifier`` (double quotes, embedded quotes doubled) or
    ``literal``.
    """

    def quote_identifier(self, name: str) -> str:
        if not isinstance(name, str) or not name:
            raise CompileError(f"Cannot quote identifier {name!r}")
        if '\x00' in name:
            raise CompileError("Identifier contains a NUL byte")
        return '"' + name.replace('"', '""') + '"'

    def quote_table(self, ref: Union[TableRef, str]) -> str:
        """Unqualified table name."""
        return self.quote_identifier(TableRef.parse(ref).name)

    def quote_schema_table(self, ref: Union[TableRef, str]) -> str:
        table = TableRef.parse(ref)
        if table.schema:
            return f"{self.quote_identifier(table.schema)}.{self.quote_identifier(table.name)}"
        return self.quote_identifier(table.name)

    def quote_column(self, column: Union[Expression, str]) -> str:
        return as_expression(column).render(self)

    def qualified(self, column: Union[Expression, str], qualifier: str) -> str:
        """Render a column or expression against a row image or table."""
        return as_expression(column).qualify(qualifier).render(self)

    def literal(self, value: Any) -> str:
        if isinstance(value, Expression):
            return value.render(self)
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, Decimal)):
            return str(value)
        if isinstance(value, float):
            if value != value or value in (float('inf'), float('-inf')):
                return f"'{value!r}'::double precision"
            return repr(value)
        if isinstance(value, str):
            if '\x00' in value:
                raise CompileError("String literal contains a NUL byte")
            return "'" + value.replace("'", "''") + "'"
        if isinstance(value, datetime.datetime):
            kind = "timestamptz" if value.tzinfo else "timestamp"
            return f"'{value.isoformat(sep=' ')}'::{kind}"
        if isinstance(value, datetime.date):
            return f"'{value.isoformat()}'::date"
        raise CompileError(f"Cannot render {type(value).__name__} value as SQL literal: {value!r}")
