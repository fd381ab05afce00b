"""Reconciliation arithmetic for inventory checks.

Pure functions, no I/O. They work on anything shaped like an
``InventoryCheckItem`` (``system_quantity``, ``actual_quantity``,
``difference``, ``checked``, ``reason``), so they apply equally to ORM rows
and to plain objects in tests.
"""

from typing import Iterable, List, NamedTuple, Optional


class CheckCounters(NamedTuple):
    """Aggregate counters stored on a check."""

    checked_products: int
    matched: int
    over: int
    under: int


def apply_count(item, actual_quantity: Optional[int]):
    """Record a physical count on *item* and return it.

    ``None`` clears the count: the item goes back to unchecked with a zero
    difference.
    """
    item.actual_quantity = actual_quantity
    item.checked = actual_quantity is not None
    item.difference = actual_quantity - item.system_quantity if item.checked else 0
    return item


def aggregate(items: Iterable) -> CheckCounters:
    """Recount checked/matched/over/under from scratch."""
    checked_products = matched = over = under = 0
    for item in items:
        if not item.checked:
            continue
        checked_products += 1
        if item.difference == 0:
            matched += 1
        elif item.difference > 0:
            over += 1
        else:
            under += 1
    return CheckCounters(checked_products, matched, over, under)


def refresh_counters(check) -> CheckCounters:
    """Overwrite every denormalized counter on *check* from its items."""
    counters = aggregate(check.items)
    check.total_products = len(check.items)
    check.checked_products = counters.checked_products
    check.matched = counters.matched
    check.over = counters.over
    check.under = counters.under
    return counters


def discrepant_items(items: Iterable) -> List:
    """Counted items whose quantity differs from the snapshot."""
    return [item for item in items if item.checked and item.difference != 0]


def missing_reasons(items: Iterable) -> List:
    """Discrepant items that still have no reason."""
    return [item for item in discrepant_items(items) if not (item.reason or "").strip()]


def accuracy(matched: int, checked_products: int) -> Optional[float]:
    """Percentage of counted items that matched, or None when nothing was counted."""
    if checked_products <= 0:
        return None
    return matched / checked_products * 100
