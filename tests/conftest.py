#!/usr/bin/env python3
"""
pgtriggers Test Configuration - PyTest Configuration and Fixtures
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pgtriggers.compiler import TriggerCompiler
from pgtriggers.references import PostgresDialect


class RecordingDatabase:
    """Installer collaborator that records every call in order."""

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on
        self.transactions = 0

    def _record(self, call):
        self.calls.append(call)
        if self.fail_on is not None and call[1] == self.fail_on:
            raise RuntimeError(f"refused {self.fail_on}")

    def install_procedure(self, name, body, options):
        self._record(('procedure', name, body, options))

    def install_trigger(self, table, name, procedure, options):
        self._record(('trigger', name, table, procedure, options))

    def create_table(self, name, definition):
        self._record(('table', str(name), definition))


class TransactionalRecordingDatabase(RecordingDatabase):
    def __init__(self, fail_on=None):
        super().__init__(fail_on)
        self.rolled_back = 0

    def transaction(self):
        database = self

        class _Transaction:
            def __enter__(self):
                database.calls.append(('begin',))
                return database

            def __exit__(self, exc_type, exc, tb):
                if exc_type is None:
                    database.calls.append(('commit',))
                    database.transactions += 1
                else:
                    database.calls.append(('rollback',))
                    database.rolled_back += 1
                return False

        return _Transaction()


@pytest.fixture
def dialect():
    return PostgresDialect()


@pytest.fixture
def compiler():
    return TriggerCompiler()


@pytest.fixture
def recording_database():
    return RecordingDatabase()


@pytest.fixture
def transactional_database():
    return TransactionalRecordingDatabase()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every PGT_* variable so config tests see defaults."""
    for key in list(os.environ):
        if key.startswith('PGT_'):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


# Custom markers for test organization
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "integration: Tests that install triggers into a live PostgreSQL database"
    )


@pytest.fixture
def make_database():
    """Factory for recording collaborators, optionally transactional or failing on one object name."""
    def make(transactional=False, fail_on=None):
        if transactional:
            return TransactionalRecordingDatabase(fail_on)
        return RecordingDatabase(fail_on)
    return make
