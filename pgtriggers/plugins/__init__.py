"""Database collaborators for the installer."""

from pgtriggers.plugins.script_database import ScriptDatabase

__all__ = ['ScriptDatabase']
