#!/usr/bin/env python3
"""
Tests for environment configuration, rule file loading and the CLI.
"""

import json

import pytest

from pgtriggers import cli
from pgtriggers.compiler import TriggerCompiler
from pgtriggers.config import TriggerConfig
from pgtriggers.errors import ConfigurationError, RuleFileError
from pgtriggers.loader import build_rule, load_rule_file, load_rules
from pgtriggers.references import BinaryOp, Case, Column, Func, Literal, Raw, TableRef
from pgtriggers.rules import CounterCacheRule, OutboxRule, SumCacheRule, TouchRule


class TestTriggerConfig:

    def test_defaults(self, clean_env):
        config = TriggerConfig()
        assert config.db_host == "localhost"
        assert config.db_port == 5432
        assert config.log_level == "INFO"
        assert config.trigger_depth_limit is None
        assert config.default_schema is None

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("PGT_DB_HOST", "db.internal")
        clean_env.setenv("PGT_DB_PORT", "6543")
        clean_env.setenv("PGT_DB_NAME", "app")
        clean_env.setenv("PGT_DB_USER", "owner")
        clean_env.setenv("PGT_LOG_LEVEL", "debug")
        clean_env.setenv("PGT_DEFAULT_SCHEMA", "billing")
        clean_env.setenv("PGT_TRIGGER_DEPTH_LIMIT", "3")
        config = TriggerConfig()
        assert config.db_host == "db.internal"
        assert config.db_port == 6543
        assert config.log_level == "DEBUG"
        assert config.default_schema == "billing"
        assert config.trigger_depth_limit == 3
        assert config.get_db_url() == "postgresql://owner@db.internal:6543/app"

    def test_password_only_in_url_when_asked(self, clean_env):
        clean_env.setenv("PGT_DB_PASSWORD", "p@ss")
        config = TriggerConfig()
        assert "p%40ss" in config.get_db_url(include_password=True)
        assert "p@ss" not in config.get_db_url()
        assert "p@ss" not in json.dumps(config.get_safe_dict())
        assert config.get_safe_dict()["password_configured"] is True

    @pytest.mark.parametrize("value", ["0", "none"])
    def test_invalid_depth_limit(self, clean_env, value):
        clean_env.setenv("PGT_TRIGGER_DEPTH_LIMIT", value)
        with pytest.raises(ConfigurationError):
            TriggerConfig()

    def test_invalid_port(self, clean_env):
        clean_env.setenv("PGT_DB_PORT", "postgres")
        with pytest.raises(ConfigurationError):
            TriggerConfig()

    def test_invalid_log_level(self, clean_env):
        clean_env.setenv("PGT_LOG_LEVEL", "loud")
        with pytest.raises(ConfigurationError) as exc_info:
            TriggerConfig()
        assert exc_info.value.field == "log_level"


class TestLoader:

    def test_builds_rules_by_kind(self):
        rules = load_rules({"rules": [
            {"kind": "counter_cache", "main_table": "accounts", "main_table_id_column": "id",
             "counter_column": "num_entries", "counted_table": "entries", "counted_table_id_column": "account_id"},
            {"kind": "touch", "main_table": "children", "touch_table": "parents", "column": "changed_on",
             "expr": {"id": "parent_id"}, "hop_limit": 2},
        ]})
        assert rules[0] == CounterCacheRule("accounts", "id", "num_entries", "entries", "account_id")
        assert isinstance(rules[1], TouchRule)
        assert rules[1].expr == (("id", "parent_id"),)
        assert rules[1].hop_limit == 2

    def test_sql_expression(self):
        rule = build_rule({"kind": "sum_cache", "main_table": "accounts", "main_table_id_column": "id",
                           "sum_column": "balance", "summed_table": "entries",
                           "summed_table_id_column": "account_id", "summed_column": {"sql": "{row}.amount * 2"}})
        assert isinstance(rule, SumCacheRule)
        assert rule.summed_column == Raw("{row}.amount * 2")

    def test_structured_expression(self):
        rule = build_rule({"kind": "sum_cache", "main_table": "accounts", "main_table_id_column": "id",
                           "sum_column": "nonzero", "summed_table": "entries",
                           "summed_table_id_column": "account_id",
                           "summed_column": {"case": [[{"op": "=", "left": "amount", "right": 0}, 0]],
                                             "else": {"func": "abs", "args": [{"column": "sign"}]}}})
        assert rule.summed_column == Case(
            ((BinaryOp("=", Column("amount"), Literal(0)), Literal(0)),),
            else_=Func("abs", (Column("sign"),)),
        )
        body = TriggerCompiler().compile(rule).procedures[0].body
        assert '+ COALESCE((CASE WHEN (NEW."amount" = 0) THEN 0 ELSE abs(NEW."sign") END), 0)' in body
        assert '- COALESCE((CASE WHEN (OLD."amount" = 0) THEN 0 ELSE abs(OLD."sign") END), 0)' in body

    @pytest.mark.parametrize("expression", [
        {"colour": "x"},
        {"func": "drop table x; --", "args": []},
        {"func": "abs", "args": "amount"},
        {"op": "+", "left": 1, "right": 2},
        {"case": []},
        {"case": [[1, 2, 3]]},
        {"literal": 1, "column": "a"},
    ])
    def test_bad_expression_object(self, expression):
        with pytest.raises(RuleFileError) as exc_info:
            build_rule({"kind": "sum_cache", "main_table": "a", "main_table_id_column": "id",
                        "sum_column": "s", "summed_table": "e", "summed_table_id_column": "a_id",
                        "summed_column": expression}, index=2)
        assert exc_info.value.index == 2

    def test_default_schema(self):
        rule = build_rule({"kind": "outbox", "table": "accounts", "outbox_table": "other.events"},
                          default_schema="billing")
        assert isinstance(rule, OutboxRule)
        assert TableRef.parse(rule.table) == TableRef("accounts", "billing")
        assert TableRef.parse(rule.outbox_table) == TableRef("events", "other")

    def test_unknown_kind(self):
        with pytest.raises(RuleFileError) as exc_info:
            load_rules({"rules": [{"kind": "teleport"}]}, path="rules.json")
        assert exc_info.value.index == 0
        assert exc_info.value.path == "rules.json"

    def test_unknown_field(self):
        with pytest.raises(RuleFileError) as exc_info:
            build_rule({"kind": "immutable", "table": "a", "columns": ["b"], "colour": "red"}, index=3)
        assert "colour" in exc_info.value.message
        assert exc_info.value.index == 3

    def test_missing_field(self):
        with pytest.raises(RuleFileError):
            build_rule({"kind": "immutable", "table": "a"})

    @pytest.mark.parametrize("document", [[], {"rules": {}}, {"other": []}, {"rules": ["x"]}])
    def test_malformed_documents(self, document):
        with pytest.raises(RuleFileError):
            load_rules(document)

    def test_load_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [{"kind": "updated_at", "table": "a", "column": "u"}]}))
        assert len(load_rule_file(path)) == 1

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("{")
        with pytest.raises(RuleFileError):
            load_rule_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuleFileError):
            load_rule_file(tmp_path / "absent.json")


class TestCLI:

    @pytest.fixture
    def rule_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [
            {"kind": "counter_cache", "main_table": "accounts", "main_table_id_column": "id",
             "counter_column": "num_entries", "counted_table": "entries", "counted_table_id_column": "account_id"},
        ]}))
        return str(path)

    def test_render(self, clean_env, rule_file, capsys):
        cli.main(["render", rule_file])
        out = capsys.readouterr().out
        assert out.startswith("-- counter_cache\n")
        assert 'CREATE OR REPLACE FUNCTION "pgt_cc_accounts__id__num_entries__entries__account_id"()' in out

    def test_render_with_depth_limit(self, clean_env, rule_file, capsys):
        cli.main(["--depth-limit", "2", "render", rule_file])
        assert "pg_trigger_depth() > 2" in capsys.readouterr().out

    def test_install_dry_run(self, clean_env, rule_file, capsys):
        cli.main(["install", rule_file, "--dry-run"])
        out = capsys.readouterr().out
        assert out.startswith("BEGIN;")
        assert 'CREATE TRIGGER "pgt_cc_accounts__id__num_entries__account_id"' in out

    def test_bad_rule_file_exits_1(self, clean_env, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [{"kind": "immutable", "table": "a", "columns": []}]}))
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["render", str(path)])
        assert exc_info.value.code == 1

    def test_invalid_depth_limit_exits_1(self, clean_env, rule_file):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--depth-limit", "0", "render", rule_file])
        assert exc_info.value.code == 1

    def test_install_never_connects_for_bad_rules(self, clean_env, tmp_path, monkeypatch):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({"rules": [{"kind": "touch", "main_table": "a", "touch_table": "b",
                                               "column": "t", "expr": {}}]}))

        def refuse(url):
            raise AssertionError("should not connect")

        monkeypatch.setattr(cli, "create_adapter_from_url", refuse)
        with pytest.raises(SystemExit):
            cli.main(["install", str(path), "--dsn", "postgresql://localhost/x"])

    def test_command_required(self, clean_env):
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code == 2

    def test_bad_environment_log_level_exits_1(self, clean_env, rule_file):
        clean_env.setenv("PGT_LOG_LEVEL", "loud")
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["render", rule_file])
        assert exc_info.value.code == 1

    def test_bad_log_level_argument_is_a_usage_error(self, clean_env, rule_file):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--log-level", "loud", "render", rule_file])
        assert exc_info.value.code == 2

    def test_log_level_argument_case_insensitive(self, clean_env, rule_file, capsys):
        cli.main(["--log-level", "debug", "render", rule_file])
        assert capsys.readouterr().out.startswith("-- counter_cache\n")
