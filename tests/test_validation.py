#!/usr/bin/env python3
"""
Tests for rule validation and compiler dispatch.
"""

from dataclasses import dataclass
from typing import ClassVar

import pytest

from pgtriggers.compiler import COMPILERS, TriggerCompiler, compile_rule
from pgtriggers.errors import CompileError, ConfigurationError, ErrorCode
from pgtriggers.installer import Installer
from pgtriggers.references import TableRef
from pgtriggers.rules import (
    RULE_TYPES, RULES_BY_KIND, CounterCacheRule, ForceDefaultsRule, ForeignKeyArrayRule,
    ImmutableRule, JsonAuditLogRule, OutboxRule, RuleDescription, SumCacheRule,
    SumThroughManyCacheRule, TouchRule,
)
from pgtriggers.specs import CompiledRule, ProcedureSpec, Timing, TriggerSpec
from pgtriggers.validation import validate_compiled, validate_rule


class TestRequiredFields:

    def test_valid_rule_passes(self):
        rule = CounterCacheRule("accounts", "id", "num_entries", "entries", "account_id")
        assert validate_rule(rule) is rule

    @pytest.mark.parametrize("field", ["main_table", "counter_column", "counted_table_id_column"])
    def test_empty_required_field(self, field):
        values = dict(main_table="accounts", main_table_id_column="id", counter_column="n",
                      counted_table="entries", counted_table_id_column="account_id")
        values[field] = ""
        with pytest.raises(ConfigurationError) as exc_info:
            validate_rule(CounterCacheRule(**values))
        assert exc_info.value.field == field
        assert exc_info.value.rule == "counter_cache"
        assert exc_info.value.code == ErrorCode.CONFIGURATION_ERROR

    def test_none_required_field(self):
        with pytest.raises(ConfigurationError):
            validate_rule(SumCacheRule("accounts", "id", "balance", "entries", "account_id", None))

    def test_bad_table_reference(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_rule(CounterCacheRule("s.", "id", "n", "entries", "account_id"))
        assert exc_info.value.field == "main_table"

    def test_non_string_column(self):
        with pytest.raises(ConfigurationError):
            validate_rule(CounterCacheRule("accounts", 1, "n", "entries", "account_id"))

    def test_empty_override_name(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_rule(ImmutableRule("accounts", "a", function_name=""))
        assert exc_info.value.field == "function_name"

    def test_not_a_rule(self):
        with pytest.raises(ConfigurationError):
            validate_rule({"kind": "counter_cache"})


class TestDepthLimits:

    @pytest.mark.parametrize("depth", [0, -3, True, "1"])
    def test_invalid_trigger_depth_limit(self, depth):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_rule(ImmutableRule("accounts", "a", trigger_depth_limit=depth))
        assert exc_info.value.field == "trigger_depth_limit"

    def test_invalid_hop_limit(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_rule(TouchRule("c", "p", "t", {"id": "p_id"}, hop_limit=0))
        assert exc_info.value.field == "hop_limit"

    def test_invalid_default_depth_limit(self):
        with pytest.raises(ConfigurationError):
            TriggerCompiler(default_depth_limit=0)

    def test_default_depth_limit_applies(self):
        compiler = TriggerCompiler(default_depth_limit=4)
        body = compiler.compile(ImmutableRule("accounts", "a")).procedures[0].body
        assert "pg_trigger_depth() > 4" in body

    def test_rule_depth_limit_wins(self):
        compiler = TriggerCompiler(default_depth_limit=4)
        body = compiler.compile(ImmutableRule("accounts", "a", trigger_depth_limit=6)).procedures[0].body
        assert "pg_trigger_depth() > 6" in body


class TestKindSpecificChecks:

    def test_touch_requires_mapping(self):
        with pytest.raises(ConfigurationError):
            validate_rule(TouchRule("c", "p", "t", {}))

    def test_touch_mapping_pairs(self):
        with pytest.raises(ConfigurationError):
            validate_rule(TouchRule("c", "p", "t", [("a", "b", "c")]))

    def test_immutable_requires_columns(self):
        with pytest.raises(ConfigurationError):
            validate_rule(ImmutableRule("accounts", []))

    def test_immutable_duplicate_columns(self):
        with pytest.raises(ConfigurationError):
            validate_rule(ImmutableRule("accounts", ["a", "a"]))

    def test_outbox_unknown_event(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_rule(OutboxRule("accounts", events=["truncate"]))
        assert exc_info.value.field == "events"

    def test_outbox_no_events(self):
        with pytest.raises(ConfigurationError):
            validate_rule(OutboxRule("accounts", events=[]))

    def test_outbox_column_clash(self):
        with pytest.raises(ConfigurationError):
            validate_rule(OutboxRule("accounts", updated_column="created"))

    def test_outbox_uuid_function_name(self):
        with pytest.raises(ConfigurationError):
            validate_rule(OutboxRule("accounts", uuid_primary_key=True, uuid_function="x(); DROP"))

    def test_outbox_flags_are_booleans(self):
        with pytest.raises(ConfigurationError):
            validate_rule(OutboxRule("accounts", create_outbox_table="yes"))

    def test_force_defaults_requires_values(self):
        with pytest.raises(ConfigurationError):
            validate_rule(ForceDefaultsRule("accounts", {}))


class TestNameCollisions:

    def test_fk_array_same_trigger_name_on_same_table(self, compiler):
        rule = ForeignKeyArrayRule("nodes", "parent_ids", "nodes", "id",
                                   trigger_name="t", referenced_trigger_name="t")
        with pytest.raises(ConfigurationError) as exc_info:
            compiler.compile(rule)
        assert exc_info.value.field == "trigger_name"

    def test_fk_array_same_trigger_name_on_different_tables_allowed(self, compiler):
        rule = ForeignKeyArrayRule("entries", "account_ids", "accounts", "id",
                                   trigger_name="t", referenced_trigger_name="t")
        assert len(compiler.compile(rule).triggers) == 2

    def test_shared_function_name(self, compiler):
        rule = SumThroughManyCacheRule("parents", "balance", "children", "amount", "links",
                                       "parent_id", "child_id", function_name="f", join_function_name="f")
        with pytest.raises(ConfigurationError) as exc_info:
            compiler.compile(rule)
        assert exc_info.value.field == "function_name"

    def test_collision_after_truncation(self):
        table = TableRef("t")
        compiled = CompiledRule(
            ImmutableRule("t", "a"),
            procedures=[ProcedureSpec("x" * 63 + "a", table, ""), ProcedureSpec("x" * 63 + "b", table, "")],
        )
        with pytest.raises(ConfigurationError):
            validate_compiled(compiled)

    def test_distinct_names_pass(self):
        table = TableRef("t")
        compiled = CompiledRule(
            ImmutableRule("t", "a"),
            triggers=[TriggerSpec("a", table, "f", ("update",), Timing.BEFORE),
                      TriggerSpec("b", table, "f", ("update",), Timing.BEFORE)],
        )
        assert validate_compiled(compiled) is compiled


class TestDispatch:

    def test_every_rule_type_has_a_compiler(self):
        assert set(RULE_TYPES) == set(COMPILERS)

    def test_kinds_are_unique(self):
        assert len(RULES_BY_KIND) == len(RULE_TYPES)

    def test_unknown_rule_type(self, compiler):
        @dataclass(frozen=True)
        class MysteryRule(RuleDescription):
            kind: ClassVar[str] = "mystery"

        with pytest.raises(CompileError) as exc_info:
            compiler.compile(MysteryRule())
        assert exc_info.value.code == ErrorCode.COMPILATION_ERROR

    def test_validation_runs_before_compilation(self, compiler):
        with pytest.raises(ConfigurationError):
            compiler.compile(ImmutableRule("accounts", "a", trigger_depth_limit=0))

    def test_compile_all_fails_whole_batch(self, compiler):
        rules = [ImmutableRule("accounts", "a"), ImmutableRule("accounts", [])]
        with pytest.raises(ConfigurationError):
            compiler.compile_all(rules)

    def test_compilation_is_deterministic(self):
        rule = SumCacheRule("accounts", "id", "balance", "entries", "account_id", "amount")
        assert compile_rule(rule) == compile_rule(rule)

    def test_unrenderable_default(self, compiler):
        with pytest.raises(CompileError):
            compiler.compile(ForceDefaultsRule("accounts", {"a": object()}))


class TestBatchCollisions:

    def test_mangled_names_collide_across_rules(self, compiler):
        rules = [TouchRule("a.b_c", "p", "changed_on", {"id": "p_id"}),
                 TouchRule("a_b.c", "p", "changed_on", {"id": "other_id"})]
        with pytest.raises(ConfigurationError) as exc_info:
            compiler.compile_all(rules)
        assert exc_info.value.field == "function_name"
        assert "pgt_t_a_b_c__p" in exc_info.value.message

    def test_overridden_function_reused_with_different_body(self, compiler):
        rules = [ImmutableRule("accounts", "a", function_name="guard"),
                 ImmutableRule("entries", "b", function_name="guard")]
        with pytest.raises(ConfigurationError):
            compiler.compile_all(rules)

    def test_same_trigger_name_on_one_table(self, compiler):
        rules = [ImmutableRule("accounts", "a", trigger_name="t"),
                 ImmutableRule("accounts", "b", trigger_name="t")]
        with pytest.raises(ConfigurationError) as exc_info:
            compiler.compile_all(rules)
        assert exc_info.value.field == "trigger_name"

    def test_shared_audit_function_allowed(self, compiler):
        rules = [JsonAuditLogRule("accounts", "audit_logs"),
                 JsonAuditLogRule("entries", "audit_logs", create_log_table=False)]
        compiled = compiler.compile_all(rules)
        assert compiled[0].procedures[0].name == compiled[1].procedures[0].name

    def test_installer_rejects_batch_before_installing(self, compiler, recording_database):
        rules = [TouchRule("a.b_c", "p", "changed_on", {"id": "p_id"}),
                 TouchRule("a_b.c", "p", "changed_on", {"id": "other_id"})]
        with pytest.raises(ConfigurationError):
            Installer(recording_database, compiler).install_all(rules)
        assert recording_database.calls == []
