"""
Aggregation primitives shared by every report.

All functions are pure: they take already-loaded records (ORM objects, dataclasses or
plain dicts exposing `amount`, `type`, `category`, `date`) and never touch the database.
Reports build on these instead of re-implementing their own sums and filters.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from feeledger.core.exceptions import ValidationError

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

Predicate = Callable[[Any], bool]

OTHERS_CATEGORY = "Others"
DEFAULT_PAGE_LIMIT = 10

# Money columns are Numeric(12, 2).
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal(10) ** 10


def field_value(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


# --- Sums and groups ---
def sum_by_predicate(items: Optional[Iterable[Any]], predicate: Optional[Predicate] = None) -> Decimal:
    """Total `amount` of the items matching predicate. Empty or missing input sums to 0."""
    total = Decimal("0")
    for item in items or ():
        if predicate is None or predicate(item):
            total += to_decimal(field_value(item, "amount"))
    return total


@dataclass
class GroupTotal:
    amount: Decimal = Decimal("0")
    count: int = 0


def group_sum(items: Optional[Iterable[Any]], key_fn: Callable[[Any], K]) -> Dict[K, GroupTotal]:
    """Bucket items by key_fn and total their amounts. Ordering is left to the caller."""
    groups: Dict[K, GroupTotal] = {}
    for item in items or ():
        key = key_fn(item)
        bucket = groups.get(key)
        if bucket is None:
            bucket = groups[key] = GroupTotal()
        bucket.amount += to_decimal(field_value(item, "amount"))
        bucket.count += 1
    return groups


def sort_breakdown_desc(groups: Dict[K, GroupTotal]) -> List[Tuple[K, GroupTotal]]:
    """Category breakdown order: largest amount first."""
    return sorted(groups.items(), key=lambda kv: kv[1].amount, reverse=True)


def sort_category_names(names: Iterable[Optional[str]]) -> List[str]:
    """Distinct non-empty names, alphabetical (case-sensitive) with "Others" always last."""
    unique = {n for n in names if n}
    return sorted(unique, key=lambda n: (n == OTHERS_CATEGORY, n))


# --- Predicates ---
def is_fee(item: Any) -> bool:
    return field_value(item, "type") == "fee"


def is_fine(item: Any) -> bool:
    return field_value(item, "type") == "fine"


def contains_ci(value: Optional[str], needle: str) -> bool:
    """Case-insensitive substring match; a missing value never matches."""
    if value is None:
        return False
    return needle.lower() in str(value).lower()


def in_date_range(start: Optional[datetime], end: Optional[datetime], field: str = "date") -> Predicate:
    def _pred(item: Any) -> bool:
        value = field_value(item, field)
        if value is None:
            return start is None and end is None
        if start is not None and value < start:
            return False
        if end is not None and value > end:
            return False
        return True

    return _pred


def in_amount_range(min_amount: Optional[Decimal], max_amount: Optional[Decimal]) -> Predicate:
    def _pred(item: Any) -> bool:
        amount = to_decimal(field_value(item, "amount"))
        if min_amount is not None and amount < min_amount:
            return False
        if max_amount is not None and amount > max_amount:
            return False
        return True

    return _pred


def all_of(*predicates: Optional[Predicate]) -> Predicate:
    active = [p for p in predicates if p is not None]

    def _pred(item: Any) -> bool:
        return all(p(item) for p in active)

    return _pred


# --- Date windows ---
def year_window(year: int) -> Tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime.combine(date(year, 12, 31), time.max)


def month_window(year: int, month: int) -> Tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, 1), datetime.combine(date(year, month, last_day), time.max)


def resolve_date_window(
    year: Optional[int] = None,
    month: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Turn report date parameters into an inclusive [start, end] window.
    An explicit from/to range wins over year/month; month is ignored without a year.
    """
    if from_date is not None or to_date is not None:
        start = datetime.combine(from_date, time.min) if from_date else None
        end = datetime.combine(to_date, time.max) if to_date else None
        return start, end
    if year is not None and month is not None:
        return month_window(year, month)
    if year is not None:
        return year_window(year)
    return None, None


# --- Validation shared by write paths ---
def validate_amount(raw: Any, field: str = "Amount") -> Decimal:
    """Coerce input to a positive Decimal that fits a money column (whole cents, below 10^10)."""
    if raw is None or isinstance(raw, bool) or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(f"{field} is required")
    try:
        amount = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be a positive number")
    if amount >= MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    if amount != amount.quantize(CENT):
        raise ValidationError(f"{field} must have at most 2 decimal places")
    return amount


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC; convert aware input before it reaches a query or column."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim; empty strings become None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def is_valid_facet(value: Any) -> bool:
    """Roster uploads sometimes shift columns and put e-mails into year/division."""
    return isinstance(value, str) and bool(value) and "@" not in value and len(value) < 50


# --- Pagination ---
@dataclass
class PageInfo:
    current_page: int
    total_pages: int
    total: int
    limit: int
    has_next_page: bool
    has_prev_page: bool


def page_info(total: int, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> PageInfo:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return PageInfo(
        current_page=page,
        total_pages=math.ceil(total / limit),
        total=total,
        limit=limit,
        has_next_page=page * limit < total,
        has_prev_page=page > 1,
    )


def paginate(items: Sequence[T], page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Tuple[List[T], PageInfo]:
    """Slice an already filtered and sorted sequence into one 1-indexed page."""
    info = page_info(len(items), page, limit)
    start = (page - 1) * limit
    return list(items[start:start + limit]), info
