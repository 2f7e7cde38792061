#!/usr/bin/env python3
"""
Installer

Registers compiled rules with a database collaborator. The collaborator is
any object providing:

- ``install_procedure(name, body, options)``
- ``install_trigger(table, name, procedure, options)``
- ``create_table(name, definition)``
- optionally ``transaction()``, a context manager; each rule is installed
  inside its own transaction when present

Installation is not retried. Failures from the collaborator propagate
unchanged (the PostgreSQL adapter raises InstallError).
"""

import logging
from contextlib import nullcontext
from typing import Iterable, List, Optional

from pgtriggers.compiler import TriggerCompiler
from pgtriggers.ddl import procedure_options, trigger_options
from pgtriggers.rules import RuleDescription
from pgtriggers.specs import CompiledRule

logger = logging.getLogger(__name__)


class Installer:
    def __init__(self, database, compiler: Optional[TriggerCompiler] = None):
        self.database = database
        self.compiler = compiler or TriggerCompiler()

    def _transaction(self):
        transaction = getattr(self.database, 'transaction', None)
        if transaction is None:
            return nullcontext()
        return transaction()

    def install_compiled(self, compiled: CompiledRule) -> CompiledRule:
        """Tables first, then procedures, then triggers."""
        with self._transaction():
            for table in compiled.tables:
                self.database.create_table(table.name, table)
                logger.info(f"Created table {table.name}")
            for procedure in compiled.procedures:
                self.database.install_procedure(procedure.name, procedure.body, procedure_options(procedure))
                logger.info(f"Installed function {procedure.name}")
            for trigger in compiled.triggers:
                self.database.install_trigger(trigger.table, trigger.name, trigger.procedure,
                                              trigger_options(trigger))
                logger.info(f"Installed trigger {trigger.name} on {trigger.table}")
        return compiled

    def install(self, rule: RuleDescription) -> CompiledRule:
        return self.install_compiled(self.compiler.compile(rule))

    def install_all(self, rules: Iterable[RuleDescription]) -> List[CompiledRule]:
        """Compile every rule up front so a malformed rule installs nothing."""
        compiled_rules = self.compiler.compile_all(rules)
        for compiled in compiled_rules:
            self.install_compiled(compiled)
        logger.info(f"Installed {len(compiled_rules)} rules")
        return compiled_rules


def install(database, rule: RuleDescription, **compiler_options) -> CompiledRule:
    return Installer(database, TriggerCompiler(**compiler_options)).install(rule)
