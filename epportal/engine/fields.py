"""
Loosely-typed store values.

The store hands back checkboxes as true/1/"true", linked records as a bare id,
a list of ids, or (display mode) objects and names. Every read site goes
through these helpers instead of comparing ad hoc.
"""

from typing import Any, Iterable, List, Optional

_FALSE_STRINGS = {'', 'false', '0'}


def is_truthy_flag(value: Any) -> bool:
    """False for False/0/""/"false"/"0"/None, True for anything else."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def is_strictly_true(value: Any) -> bool:
    """The checkbox is set: True or 1 only."""
    return value is True or (type(value) is int and value == 1)


def is_blank(value: Any) -> bool:
    """None, empty/whitespace string, or an empty list."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def link_ids(value: Any) -> List[str]:
    """
    Normalize a linked-record value to a list of record ids.

    Zero, one or many links all come back as a list; objects contribute
    their 'id'; empties are dropped.
    """
    if value is None or value == '':
        return []
    items: Iterable[Any] = value if isinstance(value, (list, tuple)) else [value]
    ids = []
    for item in items:
        if isinstance(item, dict):
            item = item.get('id')
        if isinstance(item, str) and item:
            ids.append(item)
    return ids


def display_text(value: Any) -> Optional[str]:
    """Flatten a display-mode value (string, list of names/objects) to one string."""
    if is_blank(value):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get('name') or value.get('id')
    if isinstance(value, (list, tuple)):
        parts = [display_text(v) for v in value]
        return ', '.join(p for p in parts if p) or None
    return str(value)


def first_present(fields: dict, names: Iterable[str]) -> Any:
    """Value of the first non-blank column among names, or None."""
    for name in names:
        value = fields.get(name)
        if not is_blank(value):
            return value
    return None
