"""Reporting over inventory checks for the dashboards.

Read-only: takes already-loaded checks (optionally pre-filtered by creator)
and never touches the database.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Optional

from storeops.models.inventory_check import InventoryCheckStatus as Status
from storeops.services.reconciliation import accuracy

TOP_DIFF_LIMIT = 5
TREND_MONTHS = 6


@dataclass
class ProductDiscrepancy:
    product_id: int
    product_name: str
    count: int = 0
    total_difference: int = 0


@dataclass
class MonthlyAccuracy:
    month: str  # YYYY-MM
    checks: int
    accuracy: float


@dataclass
class InventoryStats:
    total_checks: int = 0
    draft_checks: int = 0
    submitted_checks: int = 0
    approved_checks: int = 0
    rejected_checks: int = 0
    avg_accuracy: float = 0.0
    top_diff_products: List[ProductDiscrepancy] = field(default_factory=list)
    monthly_trend: List[MonthlyAccuracy] = field(default_factory=list)


def _mean_accuracy(checks: Iterable) -> float:
    """Mean accuracy of checks that counted at least one item, else 0."""
    values = [
        value
        for value in (accuracy(c.matched, c.checked_products) for c in checks)
        if value is not None
    ]
    return sum(values) / len(values) if values else 0.0


def _local(ts: datetime, tz: tzinfo) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz)


def _recent_months(now: datetime, count: int) -> List[tuple]:
    """(year, month) pairs for the last *count* months, oldest first."""
    months = []
    year, month = now.year, now.month
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def top_discrepancies(approved: Iterable, limit: int = TOP_DIFF_LIMIT) -> List[ProductDiscrepancy]:
    tally: Dict[int, ProductDiscrepancy] = {}
    for check in approved:
        for item in check.items:
            if not item.checked or item.difference == 0:
                continue
            entry = tally.setdefault(
                item.product_id, ProductDiscrepancy(item.product_id, item.product_name)
            )
            entry.count += 1
            entry.total_difference += abs(item.difference)
    ranked = sorted(
        tally.values(), key=lambda e: (-e.count, -e.total_difference, e.product_id)
    )
    return ranked[:limit]


def monthly_trend(
    approved: Iterable, now: datetime, tz: tzinfo, months: int = TREND_MONTHS
) -> List[MonthlyAccuracy]:
    buckets: Dict[tuple, list] = {key: [] for key in _recent_months(_local(now, tz), months)}
    for check in approved:
        created = _local(check.created_at, tz)
        key = (created.year, created.month)
        if key in buckets:
            buckets[key].append(check)
    return [
        MonthlyAccuracy(
            month=f"{year:04d}-{month:02d}",
            checks=len(checks),
            accuracy=round(_mean_accuracy(checks), 1),
        )
        for (year, month), checks in buckets.items()
    ]


def compute_inventory_stats(
    checks: Iterable,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> InventoryStats:
    """Status counts, accuracy, chronic discrepancies and the 6-month trend."""
    checks = list(checks)
    now = now or datetime.now(timezone.utc)
    tz = tz or timezone.utc

    by_status = {status: 0 for status in Status}
    for check in checks:
        by_status[Status(check.status)] += 1
    approved = [c for c in checks if c.status == Status.APPROVED]

    return InventoryStats(
        total_checks=len(checks),
        draft_checks=by_status[Status.DRAFT],
        submitted_checks=by_status[Status.SUBMITTED],
        approved_checks=by_status[Status.APPROVED],
        rejected_checks=by_status[Status.REJECTED],
        avg_accuracy=round(_mean_accuracy(approved), 1),
        top_diff_products=top_discrepancies(approved),
        monthly_trend=monthly_trend(approved, now, tz),
    )
