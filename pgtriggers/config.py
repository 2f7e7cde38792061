#!/usr/bin/env python3
"""
Configuration for pgtriggers
Connection settings and compiler defaults, read from the environment
"""

import os
from typing import Any, Dict, Optional
from dataclasses import dataclass
from urllib.parse import quote

from pgtriggers.errors import ConfigurationError
from pgtriggers.guards import check_depth_limit

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class TriggerConfig:
    """pgtriggers configuration settings"""

    # Database settings
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "postgres"
    db_user: str = "postgres"
    db_password: str = None

    # Runtime settings
    log_level: str = "INFO"

    # Compiler defaults
    default_schema: Optional[str] = None
    trigger_depth_limit: Optional[int] = None

    def __post_init__(self):
        """Load environment variables"""
        self.db_password = os.environ.get('PGT_DB_PASSWORD', self.db_password)
        self.log_level = os.environ.get('PGT_LOG_LEVEL', self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"PGT_LOG_LEVEL must be one of {list(LOG_LEVELS)}, got {self.log_level!r}",
                                     field='log_level')

        self.db_host = os.environ.get('PGT_DB_HOST', self.db_host)
        port = os.environ.get('PGT_DB_PORT', str(self.db_port))
        try:
            self.db_port = int(port)
        except ValueError:
            raise ConfigurationError(f"PGT_DB_PORT must be an integer, got {port!r}", field='db_port')
        self.db_name = os.environ.get('PGT_DB_NAME', self.db_name)
        self.db_user = os.environ.get('PGT_DB_USER', self.db_user)

        self.default_schema = os.environ.get('PGT_DEFAULT_SCHEMA') or self.default_schema

        depth = os.environ.get('PGT_TRIGGER_DEPTH_LIMIT', '')
        if depth:
            try:
                self.trigger_depth_limit = int(depth)
            except ValueError:
                raise ConfigurationError(f"PGT_TRIGGER_DEPTH_LIMIT must be an integer, got {depth!r}",
                                         field='trigger_depth_limit')
        check_depth_limit(self.trigger_depth_limit, 'trigger_depth_limit')

    def get_db_url(self, include_password: bool = False) -> str:
        """Get database connection URL"""
        user = quote(self.db_user, safe='')
        if include_password and self.db_password:
            return f"postgresql://{user}:{quote(self.db_password, safe='')}@{self.db_host}:{self.db_port}/{self.db_name}"
        else:
            return f"postgresql://{user}@{self.db_host}:{self.db_port}/{self.db_name}"

    def get_safe_dict(self) -> Dict[str, Any]:
        """Get configuration as dict without sensitive values"""
        return {
            'db_host': self.db_host,
            'db_port': self.db_port,
            'db_name': self.db_name,
            'db_user': self.db_user,
            'password_configured': bool(self.db_password),
            'log_level': self.log_level,
            'default_schema': self.default_schema,
            'trigger_depth_limit': self.trigger_depth_limit,
        }
