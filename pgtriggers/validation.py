#!/usr/bin/env python3
"""
Rule Validation

Rejects malformed rule descriptions before any SQL is emitted:

- missing or empty required fields
- table references that do not parse
- trigger depth / hop limits below 1 (or not integers)
- kind-specific shape errors (empty touch mapping, unknown outbox events, ...)
- generated or overridden names that collide once PostgreSQL truncates them,
  within one rule or across a batch of rules
"""

import dataclasses
import logging
from typing import Any, Dict, List, Sequence

from pgtriggers.errors import ConfigurationError
from pgtriggers.guards import check_depth_limit
from pgtriggers.naming import truncated
from pgtriggers.references import FUNCTION_NAME_PATTERN, ROW_PLACEHOLDER, Expression, Raw, TableRef
from pgtriggers.rules import (
    ForceDefaultsRule, ImmutableRule, OutboxRule, RuleDescription, TouchRule,
)
from pgtriggers.specs import ALL_EVENTS, CompiledRule

logger = logging.getLogger(__name__)

TABLE_FIELDS = {
    'main_table', 'counted_table', 'summed_table', 'join_table', 'touch_table',
    'table', 'referenced_table', 'log_table', 'outbox_table',
}
EXPRESSION_FIELDS = {'summed_column'}
DEPTH_FIELDS = {'trigger_depth_limit', 'hop_limit'}
BOOLEAN_FIELDS = {'create_log_table', 'create_outbox_table', 'boolean_completed_column', 'uuid_primary_key'}
# Fields whose shape is checked per kind below
STRUCTURED_FIELDS = {'expr', 'columns', 'events', 'defaults'}


def _required(field: dataclasses.Field) -> bool:
    return field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING


def _fail(rule: RuleDescription, field: str, message: str) -> ConfigurationError:
    return ConfigurationError(f"{rule.kind}: {message}", field=field, rule=rule.kind)


def _check_table(rule: RuleDescription, name: str, value: Any) -> None:
    try:
        table = TableRef.parse(value)
    except ConfigurationError as e:
        raise _fail(rule, name, f"{name}: {e.message}") from e
    if not table.name or (table.schema is not None and not table.schema):
        raise _fail(rule, name, f"{name} is not a valid table reference: {value!r}")


def _check_name(rule: RuleDescription, name: str, value: Any) -> None:
    if not isinstance(value, str) or not value:
        raise _fail(rule, name, f"{name} must be a non-empty string, got {value!r}")


def _check_expression(rule: RuleDescription, name: str, value: Any) -> None:
    if not isinstance(value, Expression):
        _check_name(rule, name, value)
    elif isinstance(value, Raw) and not value.references_row:
        raise _fail(rule, name, f"raw SQL in {name} must refer to the row as {ROW_PLACEHOLDER} "
                                f"(e.g. {ROW_PLACEHOLDER}.amount), got {value.sql!r}; use a Literal for constants")


def _check_fields(rule: RuleDescription) -> None:
    for field in dataclasses.fields(rule):
        name = field.name
        value = getattr(rule, name)

        if value is None or (isinstance(value, (str, tuple)) and not value):
            if _required(field):
                raise _fail(rule, name, f"missing required field {name}")
            if value is None:
                continue

        if name in DEPTH_FIELDS:
            try:
                check_depth_limit(value, name)
            except ConfigurationError as e:
                raise _fail(rule, name, e.message) from e
        elif name in TABLE_FIELDS:
            _check_table(rule, name, value)
        elif name in EXPRESSION_FIELDS:
            _check_expression(rule, name, value)
        elif name in BOOLEAN_FIELDS:
            if not isinstance(value, bool):
                raise _fail(rule, name, f"{name} must be a boolean, got {value!r}")
        elif name not in STRUCTURED_FIELDS:
            _check_name(rule, name, value)


def _check_touch(rule: TouchRule) -> None:
    if not isinstance(rule.expr, tuple) or not rule.expr:
        raise _fail(rule, 'expr', "expr must map at least one touch column to a main column")
    for pair in rule.expr:
        if not isinstance(pair, tuple) or len(pair) != 2:
            raise _fail(rule, 'expr', f"expr entries must be (touch column, main column) pairs, got {pair!r}")
        for column in pair:
            _check_name(rule, 'expr', column)


def _check_immutable(rule: ImmutableRule) -> None:
    if not isinstance(rule.columns, tuple) or not rule.columns:
        raise _fail(rule, 'columns', "at least one protected column is required")
    for column in rule.columns:
        _check_name(rule, 'columns', column)
    if len(set(rule.columns)) != len(rule.columns):
        raise _fail(rule, 'columns', f"duplicate protected column in {list(rule.columns)}")


def _check_outbox(rule: OutboxRule) -> None:
    if not isinstance(rule.events, tuple) or not rule.events:
        raise _fail(rule, 'events', "at least one event is required")
    for event in rule.events:
        if event not in ALL_EVENTS:
            raise _fail(rule, 'events', f"unknown event {event!r}, expected one of {list(ALL_EVENTS)}")
    if len(set(rule.events)) != len(rule.events):
        raise _fail(rule, 'events', f"duplicate event in {list(rule.events)}")
    if not FUNCTION_NAME_PATTERN.match(rule.uuid_function):
        raise _fail(rule, 'uuid_function', f"invalid uuid function name {rule.uuid_function!r}")

    columns = [getattr(rule, f.name) for f in dataclasses.fields(rule) if f.name.endswith('_column')
               and f.name != 'boolean_completed_column']
    if 'id' in columns or len(set(columns)) != len(columns):
        raise _fail(rule, 'columns', f"outbox column names must be distinct: {columns}")


def _check_force_defaults(rule: ForceDefaultsRule) -> None:
    if not isinstance(rule.defaults, tuple) or not rule.defaults:
        raise _fail(rule, 'defaults', "at least one column default is required")
    for pair in rule.defaults:
        if not isinstance(pair, tuple) or len(pair) != 2:
            raise _fail(rule, 'defaults', f"defaults entries must be (column, value) pairs, got {pair!r}")
        _check_name(rule, 'defaults', pair[0])


KIND_CHECKS = {
    TouchRule: _check_touch,
    ImmutableRule: _check_immutable,
    OutboxRule: _check_outbox,
    ForceDefaultsRule: _check_force_defaults,
}


def validate_rule(rule: RuleDescription) -> RuleDescription:
    """Raise ConfigurationError for a malformed rule, otherwise return it unchanged."""
    if not isinstance(rule, RuleDescription):
        raise ConfigurationError(f"Not a rule description: {rule!r}")

    _check_fields(rule)
    check = KIND_CHECKS.get(type(rule))
    if check is not None:
        check(rule)
    return rule


def validate_compiled(compiled: CompiledRule) -> CompiledRule:
    """
    Reject name collisions inside one compiled rule, compared the way
    PostgreSQL stores them (truncated to 63 bytes). Procedures share one
    namespace; triggers only collide on the same table.
    """
    rule = compiled.rule
    kind = getattr(rule, 'kind', type(rule).__name__)

    procedures: Dict[str, str] = {}
    for procedure in compiled.procedures:
        stored = truncated(procedure.name)
        if stored in procedures:
            raise ConfigurationError(
                f"{kind}: function names {procedures[stored]!r} and {procedure.name!r} collide",
                field='function_name', rule=kind)
        procedures[stored] = procedure.name

    triggers: Dict[tuple, str] = {}
    for trigger in compiled.triggers:
        key = (trigger.table.qualified_name, truncated(trigger.name))
        if key in triggers:
            raise ConfigurationError(
                f"{kind}: trigger names {triggers[key]!r} and {trigger.name!r} collide on "
                f"{trigger.table.qualified_name}",
                field='trigger_name', rule=kind)
        triggers[key] = trigger.name

    return compiled


def validate_rules(rules: List[RuleDescription]) -> List[RuleDescription]:
    for rule in rules:
        validate_rule(rule)
    logger.debug(f"Validated {len(rules)} rules")
    return rules


def validate_batch(compiled_rules: Sequence[CompiledRule]) -> Sequence[CompiledRule]:
    """
    Reject names shared across rules that would overwrite each other on
    install. Two rules may share a procedure only when the definitions are
    identical (one audit log function for several tables); a trigger name
    may repeat on one table only for the identical trigger.
    """
    procedures: Dict[str, tuple] = {}
    triggers: Dict[tuple, tuple] = {}

    for compiled in compiled_rules:
        kind = compiled.rule.kind
        for procedure in compiled.procedures:
            definition = (procedure.body, procedure.language, procedure.returns)
            seen = procedures.setdefault(truncated(procedure.name), (definition, procedure.name, kind))
            if seen[0] != definition:
                raise ConfigurationError(
                    f"{kind}: function {procedure.name!r} collides with {seen[1]!r} from a {seen[2]} rule "
                    f"with a different definition",
                    field='function_name', rule=kind)

        for trigger in compiled.triggers:
            key = (trigger.table.qualified_name, truncated(trigger.name))
            seen = triggers.setdefault(key, (trigger, kind))
            if seen[0] != trigger:
                raise ConfigurationError(
                    f"{kind}: trigger {trigger.name!r} on {trigger.table.qualified_name} collides with "
                    f"{seen[0].name!r} from a {seen[1]} rule",
                    field='trigger_name', rule=kind)

    return compiled_rules
