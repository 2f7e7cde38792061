#!/usr/bin/env python3
"""
pgtriggers Error Hierarchy
Canonical exception classes for rule compilation and installation.
"""

from enum import Enum


class ErrorCode(Enum):
    UNKNOWN = "UNKNOWN_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    COMPILATION_ERROR = "COMPILATION_ERROR"
    INSTALL_ERROR = "INSTALL_ERROR"
    RULE_FILE_ERROR = "RULE_FILE_ERROR"


class TriggerError(Exception):
    """Base class for all pgtriggers exceptions"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigurationError(TriggerError):
    """Raised when a rule description is malformed, before any SQL is emitted"""
    def __init__(self, message: str, field: str = None, rule: str = None):
        details = {'field': field, 'rule': rule}
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
        self.field = field
        self.rule = rule


class CompileError(TriggerError):
    """Raised when a valid rule cannot be turned into procedure text"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.COMPILATION_ERROR, details)


class InstallError(TriggerError):
    """Raised when the database rejects a compiled object"""
    def __init__(self, message: str, object_name: str = None, details: dict = None):
        details = dict(details or {})
        details['object_name'] = object_name
        super().__init__(message, ErrorCode.INSTALL_ERROR, details)
        self.object_name = object_name


class RuleFileError(TriggerError):
    """Raised when a rule file cannot be loaded"""
    def __init__(self, message: str, path: str = None, index: int = None):
        details = {'path': path, 'index': index}
        super().__init__(message, ErrorCode.RULE_FILE_ERROR, details)
        self.path = path
        self.index = index
