"""
Dotted-path lookups into a render context.
"""

from typing import Any, Mapping

_MISSING = object()


def deep_get(value: Any, path: str, default: Any = None) -> Any:
    """Follow ``a.b.0.c`` through mappings, sequences and attributes."""
    current = value
    for part in path.split("."):
        if current is None or not part or part.startswith("_"):
            return default
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)):
            if not part.isdigit() or int(part) >= len(current):
                return default
            current = current[int(part)]
        else:
            current = getattr(current, part, _MISSING)
            if callable(current):
                return default
        if current is _MISSING:
            return default
    return current
