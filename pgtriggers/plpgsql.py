"""Helpers for assembling PL/pgSQL trigger bodies."""

from typing import Iterable, Optional

from pgtriggers.guards import recursion_guard

INDENT = "  "

# Return the row image matching the operation
RETURN_ROW = (
    "IF (TG_OP = 'DELETE') THEN\n"
    "  RETURN OLD;\n"
    "END IF;\n"
    "RETURN NEW;"
)


def indent(text: str, level: int = 1) -> str:
    prefix = INDENT * level
    return "\n".join(prefix + line if line else line for line in text.split("\n"))


def if_block(condition: str, then: str, otherwise: Optional[str] = None) -> str:
    lines = [f"IF {condition} THEN", indent(then) if then else f"{INDENT}NULL;"]
    if otherwise is not None:
        lines.append("ELSE")
        lines.append(indent(otherwise) if otherwise else f"{INDENT}NULL;")
    lines.append("END IF;")
    return "\n".join(lines)


def trigger_body(statements: Iterable[str], declarations: Iterable[str] = (),
                 depth_limit: Optional[int] = None, returns: str = RETURN_ROW) -> str:
    """Wrap statements in DECLARE/BEGIN/END, with an optional recursion guard first."""
    parts = []
    declarations = list(declarations)
    if declarations:
        parts.append("DECLARE")
        parts.extend(indent(d) for d in declarations)
    parts.append("BEGIN")
    guard = recursion_guard(depth_limit)
    for block in ([guard] if guard else []) + [s for s in statements if s] + ([returns] if returns else []):
        parts.append(indent(block))
    parts.append("END;")
    return "\n".join(parts)
