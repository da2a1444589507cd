"""
Ledger reconciliation: one transaction stream out of two independent sources.

Income comes from the payment records embedded in every active student; expenditure
comes from the standalone expenditure table. Each side is filtered on its own, then the
two are merged, sorted once and paginated once, so page boundaries are global. Totals are
taken over the filtered but unpaginated sides.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from feeledger.core.aggregation import (
    PageInfo,
    Predicate,
    all_of,
    contains_ci,
    field_value,
    in_amount_range,
    in_date_range,
    is_valid_facet,
    paginate,
    sort_category_names,
    sum_by_predicate,
    to_decimal,
)
from feeledger.core.enums import TransactionType

TRANSACTION_SCOPES = ("all", "income", "expenditure")


@dataclass
class TransactionRow:
    transaction_type: str
    amount: Decimal
    date: Optional[datetime]
    category: Optional[str]
    description: Optional[str]
    receipt_number: Optional[str] = None
    created_at: Optional[datetime] = None
    payment_type: Optional[str] = None
    payment_mode: Optional[str] = None
    student_prn: Optional[str] = None
    student_name: Optional[str] = None
    student_roll_no: Optional[str] = None
    student_division: Optional[str] = None
    student_class: Optional[str] = None
    added_by: Optional[str] = None


@dataclass
class TransactionFilter:
    """Canonical form of the transaction report query."""

    scope: str = "all"
    payment_type: Optional[str] = None
    category: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    division: Optional[str] = None
    student_class: Optional[str] = None
    search: Optional[str] = None
    sort_by: str = "date"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10

    @property
    def student_only(self) -> bool:
        # Expenditures carry no division/class, so these filters can never match them.
        return bool(self.division or self.student_class)


@dataclass
class TransactionSummary:
    total_income: Decimal = Decimal("0")
    total_expenditure: Decimal = Decimal("0")

    @property
    def net_balance(self) -> Decimal:
        return self.total_income - self.total_expenditure


@dataclass
class TransactionLedger:
    transactions: List[TransactionRow]
    summary: TransactionSummary
    page: PageInfo


@dataclass
class FilterOptions:
    divisions: List[str] = field(default_factory=list)
    years: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    income_categories: List[str] = field(default_factory=list)
    expenditure_categories: List[str] = field(default_factory=list)


def _common_predicates(flt: TransactionFilter) -> List[Optional[Predicate]]:
    preds: List[Optional[Predicate]] = []
    if flt.start is not None or flt.end is not None:
        preds.append(in_date_range(flt.start, flt.end))
    if flt.min_amount is not None or flt.max_amount is not None:
        preds.append(in_amount_range(flt.min_amount, flt.max_amount))
    if flt.category:
        needle = flt.category
        preds.append(lambda row: contains_ci(row.category, needle))
    return preds


def _search_predicate(needle: Optional[str], fields: Sequence[str]) -> Optional[Predicate]:
    if not needle:
        return None
    return lambda row: any(contains_ci(getattr(row, f), needle) for f in fields)


def income_rows(students: Iterable, flt: TransactionFilter) -> List[TransactionRow]:
    """Flatten the payments of active students into income rows and apply the filter."""
    rows: List[TransactionRow] = []
    for student in students:
        if not field_value(student, "is_active", True):
            continue
        for payment in field_value(student, "payments", None) or []:
            rows.append(
                TransactionRow(
                    transaction_type=TransactionType.income.value,
                    amount=to_decimal(payment.amount),
                    date=payment.date,
                    category=payment.category,
                    description=payment.reason,
                    receipt_number=payment.receipt_number,
                    created_at=payment.created_at,
                    payment_type=payment.type,
                    payment_mode=payment.payment_mode or "cash",
                    student_prn=student.prn,
                    student_name=student.name,
                    student_roll_no=student.roll_no,
                    student_division=student.division,
                    student_class=student.year,
                )
            )

    preds = _common_predicates(flt)
    if flt.payment_type and flt.payment_type != "all":
        wanted = flt.payment_type
        preds.append(lambda row: row.payment_type == wanted)
    if flt.division:
        division = flt.division
        preds.append(lambda row: contains_ci(row.student_division, division))
    if flt.student_class:
        student_class = flt.student_class
        preds.append(lambda row: contains_ci(row.student_class, student_class))
    preds.append(
        _search_predicate(
            flt.search,
            ("student_prn", "student_name", "student_roll_no", "receipt_number", "description"),
        )
    )
    keep = all_of(*preds)
    return [row for row in rows if keep(row)]


def expenditure_rows(expenditures: Iterable, flt: TransactionFilter) -> List[TransactionRow]:
    if flt.student_only:
        return []
    rows = [
        TransactionRow(
            transaction_type=TransactionType.expenditure.value,
            amount=to_decimal(exp.amount),
            date=exp.date,
            category=exp.category,
            description=exp.description,
            receipt_number=exp.receipt_number,
            created_at=exp.created_at,
            added_by=added_by_name(exp),
        )
        for exp in expenditures
    ]
    preds = _common_predicates(flt)
    preds.append(_search_predicate(flt.search, ("description", "receipt_number", "category")))
    keep = all_of(*preds)
    return [row for row in rows if keep(row)]


def added_by_name(exp) -> str:
    admin = getattr(exp, "added_by_admin", None)
    return admin.name if admin is not None and admin.name else "Unknown"


def _sort_key(sort_by: str):
    if sort_by == "amount":
        return lambda row: row.amount
    return lambda row: row.date or row.created_at or datetime.min


def reconcile_transactions(students: Iterable, expenditures: Iterable, flt: TransactionFilter) -> TransactionLedger:
    income: List[TransactionRow] = []
    spent: List[TransactionRow] = []
    if flt.scope in ("all", TransactionType.income.value):
        income = income_rows(students, flt)
    if flt.scope in ("all", TransactionType.expenditure.value):
        spent = expenditure_rows(expenditures, flt)

    merged = sorted(income + spent, key=_sort_key(flt.sort_by), reverse=flt.sort_order == "desc")
    page_rows, info = paginate(merged, flt.page, flt.limit)
    summary = TransactionSummary(
        total_income=sum_by_predicate(income),
        total_expenditure=sum_by_predicate(spent),
    )
    return TransactionLedger(transactions=page_rows, summary=summary, page=info)


def collect_filter_options(students: Iterable, expenditure_categories: Iterable[Optional[str]]) -> FilterOptions:
    """Facets from the whole active dataset, regardless of the current query."""
    divisions = set()
    years = set()
    income_categories = set()
    for student in students:
        if not field_value(student, "is_active", True):
            continue
        if is_valid_facet(student.division):
            divisions.add(student.division)
        if is_valid_facet(student.year):
            years.add(student.year)
        for payment in student.payments or []:
            income_categories.add(payment.category)

    expenditure_categories = set(expenditure_categories)
    return FilterOptions(
        divisions=sorted(divisions),
        years=sorted(years),
        categories=sort_category_names(income_categories | expenditure_categories),
        income_categories=sort_category_names(income_categories),
        expenditure_categories=sort_category_names(expenditure_categories),
    )
