"""
Add/remove patches between two item lists.
"""
from dataclasses import dataclass
from typing import Any, List

REMOVE = 'remove'
ADD = 'add'


@dataclass
class PatchOperation:
    type: str
    items: List[Any]


def get_patch(old_items, new_items, equals):
    """
    Compare two lists with a caller-supplied predicate.

    Returns at most two operations, removals first, each only when non-empty.
    `equals` is always called as equals(old_item, new_item).
    """
    to_remove = [old for old in old_items if not any(equals(old, new) for new in new_items)]
    to_add = [new for new in new_items if not any(equals(old, new) for old in old_items)]

    operations = []
    if to_remove:
        operations.append(PatchOperation(REMOVE, to_remove))
    if to_add:
        operations.append(PatchOperation(ADD, to_add))
    return operations


def items_of(patch, operation_type):
    """Flatten the items of every operation of one type."""
    return [item for operation in patch if operation.type == operation_type for item in operation.items]


def pages_equal(old_page, new_page):
    """Pages match on identity and visible fields; store id and content are ignored."""
    return (
        old_page.code == new_page.code
        and old_page.name == new_page.name
        and old_page.book_name == new_page.book_name
        and old_page.state == new_page.state
    )
