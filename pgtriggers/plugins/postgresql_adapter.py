#!/usr/bin/env python3
"""
pgtriggers PostgreSQL Adapter

Database collaborator that installs compiled trigger rules into PostgreSQL:
- Connection pooling (psycopg2 ThreadedConnectionPool)
- One transaction per installed rule
- SSL/TLS support
- Database failures wrapped in InstallError with the failing object name;
  nothing is retried

Usage:
    adapter = PostgreSQLAdapter(host='localhost', database='app', user='app')
    Installer(adapter).install(CounterCacheRule(...))
    adapter.close()
"""

import psycopg2
import psycopg2.pool
import psycopg2.extras
from psycopg2 import OperationalError
import logging
import time
import threading
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass
from contextlib import contextmanager
from enum import Enum
from urllib.parse import urlparse, unquote

from pgtriggers.ddl import render_drop_function, render_drop_trigger, render_function, render_table, render_trigger
from pgtriggers.errors import InstallError
from pgtriggers.specs import TableDefinition

# Configure logging
logger = logging.getLogger(__name__)

class ConnectionState(Enum):
    """Connection states"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"

class SSLMode(Enum):
    """SSL connection modes"""
    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"

@dataclass
class ConnectionConfig:
    """PostgreSQL connection configuration"""
    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str = ""

    # Connection pool settings
    min_connections: int = 1
    max_connections: int = 5

    # SSL settings
    ssl_mode: SSLMode = SSLMode.PREFER
    ssl_cert: Optional[str] = None
    ssl_key: Optional[str] = None
    ssl_ca: Optional[str] = None

    # Timeouts
    statement_timeout: int = 300  # seconds
    connect_timeout: int = 10

    # Application settings
    application_name: str = "pgtriggers"
    search_path: Optional[str] = None

    def to_connection_params(self) -> Dict[str, Any]:
        """Convert to psycopg2 connection parameters"""
        params = {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password,
            'connect_timeout': self.connect_timeout,
            'application_name': self.application_name,
        }
        if self.search_path:
            params['options'] = f'-c search_path={self.search_path}'

        # Add SSL configuration
        if self.ssl_mode != SSLMode.DISABLE:
            params['sslmode'] = self.ssl_mode.value
            if self.ssl_cert:
                params['sslcert'] = self.ssl_cert
            if self.ssl_key:
                params['sslkey'] = self.ssl_key
            if self.ssl_ca:
                params['sslrootcert'] = self.ssl_ca

        return params

class PostgreSQLAdapter:
    """
    Installs procedures, triggers and tables through a pooled connection.

    Statements run in autocommit mode unless issued inside ``transaction()``,
    in which case they share that transaction's connection (per thread).
    """

    def __init__(self, config: Optional[ConnectionConfig] = None, **kwargs):
        """Initialize PostgreSQL adapter"""
        self.config = config or ConnectionConfig(**kwargs)

        self.state = ConnectionState.DISCONNECTED
        self.pool = None
        self._pool_lock = threading.RLock()
        self._local = threading.local()

        self.stats = {
            'statements_executed': 0,
            'failed_statements': 0,
            'transactions_committed': 0,
            'transactions_rolled_back': 0,
            'start_time': time.time()
        }

        self._initialize_pool()

        logger.info(f"PostgreSQL adapter initialized for {self.config.host}:{self.config.port}/{self.config.database}")

    def _initialize_pool(self):
        """Initialize connection pool"""
        try:
            with self._pool_lock:
                if self.pool:
                    self.pool.closeall()

                self.pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.min_connections,
                    maxconn=self.config.max_connections,
                    **self.config.to_connection_params()
                )
                self.state = ConnectionState.CONNECTED

                logger.info(f"Connection pool initialized with {self.config.min_connections}-{self.config.max_connections} connections")

        except psycopg2.Error as e:
            self.state = ConnectionState.ERROR
            logger.error(f"Failed to initialize connection pool: {e}")
            raise InstallError(f"Cannot connect to PostgreSQL: {e}",
                               details={'host': self.config.host, 'database': self.config.database}) from e

    @contextmanager
    def get_connection(self, autocommit: bool = False):
        """Get connection from pool with automatic cleanup"""
        connection = None
        start_time = time.time()

        try:
            with self._pool_lock:
                if not self.pool:
                    raise InstallError("Connection pool not initialized")

                connection = self.pool.getconn()
                connection.autocommit = autocommit

                with connection.cursor() as cursor:
                    cursor.execute(f"SET statement_timeout = {self.config.statement_timeout * 1000}")

            connection_time = time.time() - start_time
            yield connection, connection_time

        except OperationalError as e:
            self.state = ConnectionState.ERROR
            logger.warning(f"Connection error: {e}")
            raise
        finally:
            if connection:
                with self._pool_lock:
                    if self.pool:
                        self.pool.putconn(connection)

    @contextmanager
    def transaction(self):
        """Run everything issued inside the block on one connection, committed at the end."""
        if getattr(self._local, 'connection', None) is not None:
            # Nested: join the outer transaction
            yield self._local.connection
            return

        with self.get_connection(autocommit=False) as (connection, _):
            self._local.connection = connection
            try:
                yield connection
                connection.commit()
                self.stats['transactions_committed'] += 1
            except BaseException:
                connection.rollback()
                self.stats['transactions_rolled_back'] += 1
                logger.warning("Transaction rolled back")
                raise
            finally:
                self._local.connection = None

    def execute(self, sql: str, params: Optional[Tuple] = None, fetch: bool = True) -> List[Dict[str, Any]]:
        """
        Execute one statement and return its rows (as dicts) when it produces any.

        psycopg2 errors propagate unchanged; use the install_* methods for
        DDL that should surface as InstallError.
        """
        connection = getattr(self._local, 'connection', None)
        if connection is not None:
            return self._run(connection, sql, params, fetch)
        with self.get_connection(autocommit=True) as (connection, _):
            return self._run(connection, sql, params, fetch)

    def _run(self, connection, sql: str, params: Optional[Tuple], fetch: bool) -> List[Dict[str, Any]]:
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            try:
                cursor.execute(sql, params)
            except psycopg2.Error:
                self.stats['failed_statements'] += 1
                raise
            self.stats['statements_executed'] += 1
            if fetch and cursor.description:
                return [dict(row) for row in cursor.fetchall()]
            return []

    def _execute_ddl(self, statements: List[str], object_name: str):
        try:
            with self.transaction():
                for sql in statements:
                    self.execute(sql, fetch=False)
        except psycopg2.Error as e:
            logger.error(f"Failed to install {object_name}: {e}")
            raise InstallError(f"Failed to install {object_name}: {e}".strip(), object_name=object_name,
                               details={'pgcode': e.pgcode, 'statements': statements}) from e

    # ===== Installer collaborator =====

    def install_procedure(self, name: str, body: str, options: Dict[str, Any] = None):
        self._execute_ddl([render_function(name, body, options)], name)
        logger.info(f"Created function {name}")

    def install_trigger(self, table, name: str, procedure: str, options: Dict[str, Any] = None):
        self._execute_ddl([render_drop_trigger(table, name), render_trigger(table, name, procedure, options)], name)
        logger.info(f"Created trigger {name} on {table}")

    def create_table(self, name, definition: TableDefinition):
        self._execute_ddl(render_table(definition), str(name))
        logger.info(f"Created table {name}")

    # ===== Removal =====

    def drop_function(self, name: str, if_exists: bool = True, cascade: bool = False):
        self._execute_ddl([render_drop_function(name, if_exists, cascade)], name)
        logger.info(f"Dropped function {name}")

    def drop_trigger(self, table, name: str):
        self._execute_ddl([render_drop_trigger(table, name)], name)
        logger.info(f"Dropped trigger {name} on {table}")

    def get_triggers(self, table: str, schema: str = 'public') -> List[Dict[str, Any]]:
        """Non-internal triggers on a table with the function each calls."""
        query = """
            SELECT
                t.tgname as trigger_name,
                p.proname as function_name,
                CASE
                    WHEN t.tgtype & 2 = 2 THEN 'BEFORE'
                    ELSE 'AFTER'
                END as timing,
                pg_get_triggerdef(t.oid) as definition
            FROM pg_trigger t
            JOIN pg_class c ON t.tgrelid = c.oid
            JOIN pg_namespace n ON c.relnamespace = n.oid
            JOIN pg_proc p ON t.tgfoid = p.oid
            WHERE NOT t.tgisinternal AND n.nspname = %s AND c.relname = %s
            ORDER BY t.tgname
        """
        return self.execute(query, (schema, table))

    def get_statistics(self) -> Dict[str, Any]:
        """Get adapter statistics"""
        return {
            'uptime_seconds': time.time() - self.stats['start_time'],
            'state': self.state.value,
            'pool_size': f"{self.config.min_connections}-{self.config.max_connections}",
            'statements_executed': self.stats['statements_executed'],
            'failed_statements': self.stats['failed_statements'],
            'transactions_committed': self.stats['transactions_committed'],
            'transactions_rolled_back': self.stats['transactions_rolled_back'],
        }

    def close(self):
        """Close all connections and cleanup"""
        logger.info("Closing PostgreSQL adapter")

        with self._pool_lock:
            if self.pool:
                self.pool.closeall()
                self.pool = None

        self.state = ConnectionState.DISCONNECTED
        logger.info(f"PostgreSQL adapter closed. Final stats: {self.get_statistics()}")

# Utility functions
def create_adapter_from_url(database_url: str, **kwargs) -> PostgreSQLAdapter:
    """Create adapter from database URL"""
    return PostgreSQLAdapter(config_from_url(database_url, **kwargs))

def config_from_url(database_url: str, **kwargs) -> ConnectionConfig:
    parsed = urlparse(database_url)

    return ConnectionConfig(
        host=parsed.hostname or 'localhost',
        port=parsed.port or 5432,
        database=parsed.path.lstrip('/') if parsed.path else 'postgres',
        user=unquote(parsed.username) if parsed.username else 'postgres',
        password=unquote(parsed.password) if parsed.password else '',
        **kwargs
    )
