#!/usr/bin/env python3
"""
Rule File Loader

Rule files are JSON documents of the form::

    {
      "rules": [
        {"kind": "counter_cache", "main_table": "accounts", ...},
        {"kind": "sum_cache", "summed_column": {"sql": "CASE ... END"}, ...}
      ]
    }

Table fields take ``"table"`` or ``"schema.table"``; unqualified tables get
the default schema when one is configured. Expression fields take a column
name or an expression object:

    {"column": "amount"}
    {"literal": 0}
    {"func": "abs", "args": ["amount"]}
    {"op": "*", "left": "amount", "right": 2}
    {"case": [[0, 0]], "else": 1, "operand": "amount"}
    {"sql": "{row}.amount * 2"}

Inside nodes, strings follow the constructors: function arguments, the left
of an operator and a case operand name columns, other strings are literals.
Verbatim SQL refers to the row as ``{row}``.
"""

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pgtriggers.errors import ConfigurationError, RuleFileError
from pgtriggers.references import BinaryOp, Case, Column, Func, Literal, Raw
from pgtriggers.rules import RULES_BY_KIND, RuleDescription
from pgtriggers.validation import EXPRESSION_FIELDS, TABLE_FIELDS

logger = logging.getLogger(__name__)


def _decode(node: Any) -> Any:
    """
    Decode a nested expression value. Objects are expression nodes; JSON
    scalars are passed through for the expression constructors to coerce.
    """
    if isinstance(node, list):
        raise ValueError(f"unexpected list {node!r}")
    if not isinstance(node, dict):
        return node

    keys = set(node)
    if keys == {'sql'} and isinstance(node['sql'], str):
        return Raw(node['sql'])
    if keys == {'column'} and isinstance(node['column'], str):
        return Column(node['column'])
    if keys == {'literal'}:
        return Literal(node['literal'])
    if 'func' in keys and keys <= {'func', 'args'} and isinstance(node['func'], str):
        return Func(node['func'], tuple(_decode(arg) for arg in _sequence(node.get('args', []))))
    if keys == {'op', 'left', 'right'} and isinstance(node['op'], str):
        return BinaryOp(node['op'], _decode(node['left']), _decode(node['right']))
    if 'case' in keys and keys <= {'case', 'else', 'operand'}:
        whens = []
        for when in _sequence(node['case']):
            if not isinstance(when, list) or len(when) != 2:
                raise ValueError(f"case entries must be [condition, result] pairs, got {when!r}")
            whens.append((_decode(when[0]), _decode(when[1])))
        return Case(tuple(whens), else_=_decode(node.get('else')), operand=_decode(node.get('operand')))
    raise ValueError(f"unrecognised expression {node!r}")


def _sequence(value: Any) -> list:
    if not isinstance(value, list):
        raise ValueError(f"expected a list, got {value!r}")
    return value


def _expression(value: Any, field: str, path: Optional[str], index: int) -> Any:
    if not isinstance(value, dict):
        return value
    try:
        return _decode(value)
    except (ValueError, ConfigurationError) as e:
        message = e.message if isinstance(e, ConfigurationError) else str(e)
        raise RuleFileError(f"Rule {index}: invalid {field} expression: {message}",
                            path=path, index=index) from e


def _table(value: Any, default_schema: Optional[str]) -> Any:
    if default_schema and isinstance(value, str) and value and '.' not in value:
        return f"{default_schema}.{value}"
    return value


def build_rule(entry: Dict[str, Any], index: int = 0, path: Optional[str] = None,
               default_schema: Optional[str] = None) -> RuleDescription:
    """Build one rule description from its decoded JSON object."""
    if not isinstance(entry, dict):
        raise RuleFileError(f"Rule {index} must be an object", path=path, index=index)

    entry = dict(entry)
    kind = entry.pop('kind', None)
    rule_type = RULES_BY_KIND.get(kind)
    if rule_type is None:
        raise RuleFileError(f"Rule {index}: unknown kind {kind!r}, expected one of {sorted(RULES_BY_KIND)}",
                            path=path, index=index)

    known = {f.name for f in dataclasses.fields(rule_type)}
    unknown = sorted(set(entry) - known)
    if unknown:
        raise RuleFileError(f"Rule {index} ({kind}): unknown fields {unknown}", path=path, index=index)

    for name, value in entry.items():
        if name in TABLE_FIELDS:
            entry[name] = _table(value, default_schema)
        elif name in EXPRESSION_FIELDS:
            entry[name] = _expression(value, name, path, index)

    try:
        return rule_type(**entry)
    except TypeError as e:
        raise RuleFileError(f"Rule {index} ({kind}): {e}", path=path, index=index) from e


def load_rules(document: Any, path: Optional[str] = None,
               default_schema: Optional[str] = None) -> List[RuleDescription]:
    if not isinstance(document, dict) or not isinstance(document.get('rules'), list):
        raise RuleFileError("Rule file must be an object with a \"rules\" list", path=path)

    rules = [build_rule(entry, index, path, default_schema) for index, entry in enumerate(document['rules'])]
    logger.debug(f"Loaded {len(rules)} rules from {path or 'document'}")
    return rules


def load_rule_file(path: Union[str, Path], default_schema: Optional[str] = None) -> List[RuleDescription]:
    path = str(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except OSError as e:
        raise RuleFileError(f"Cannot read rule file {path}: {e}", path=path) from e
    except json.JSONDecodeError as e:
        raise RuleFileError(f"Invalid JSON in rule file {path}: {e}", path=path) from e

    return load_rules(document, path, default_schema)
