"""
Recursion Guard

An early-return clause prepended to a trigger body: when the host engine's
trigger nesting depth exceeds the configured limit, the procedure returns the
row untouched without performing its side effect.
"""

from typing import Any, Optional

from pgtriggers.errors import ConfigurationError


def check_depth_limit(depth: Any, field: str = "trigger_depth_limit") -> Optional[int]:
    """Return the depth as an int, or None when unset. Rejects anything below 1."""
    if depth is None:
        return None
    if isinstance(depth, bool) or not isinstance(depth, int):
        raise ConfigurationError(f"{field} must be an integer, got {depth!r}", field=field)
    if depth < 1:
        raise ConfigurationError(f"{field} must be at least 1, got {depth}", field=field)
    return depth


def recursion_guard(depth: Any) -> str:
    depth = check_depth_limit(depth)
    if depth is None:
        return ""
    return (
        f"IF pg_trigger_depth() > {depth} THEN\n"
        "  IF (TG_OP = 'DELETE') THEN\n"
        "    RETURN OLD;\n"
        "  END IF;\n"
        "  RETURN NEW;\n"
        "END IF;"
    )


def effective_depth_limit(*limits: Optional[int]) -> Optional[int]:
    """The tightest of several optional limits."""
    present = [check_depth_limit(limit) for limit in limits if limit is not None]
    return min(present) if present else None
