"""
Dry-run collaborator: records the DDL an installation would run instead of
executing it.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List

from pgtriggers.ddl import render_drop_trigger, render_function, render_table, render_trigger

logger = logging.getLogger(__name__)


class ScriptDatabase:
    def __init__(self):
        self.statements: List[str] = []
        self.transactions = 0

    @contextmanager
    def transaction(self):
        self.statements.append("BEGIN;")
        yield self
        self.statements.append("COMMIT;")
        self.transactions += 1

    def install_procedure(self, name: str, body: str, options: Dict[str, Any] = None):
        self.statements.append(render_function(name, body, options))

    def install_trigger(self, table, name: str, procedure: str, options: Dict[str, Any] = None):
        self.statements.append(render_drop_trigger(table, name))
        self.statements.append(render_trigger(table, name, procedure, options))

    def create_table(self, name, definition):
        self.statements.extend(render_table(definition))

    def script(self) -> str:
        logger.debug(f"Rendering script of {len(self.statements)} statements")
        return "\n\n".join(self.statements) + "\n"
