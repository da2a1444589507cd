"""
Reports service: student payment summary and the combined transaction ledger.

Both reports load the records they need and hand them to the pure aggregation and
reconciliation functions; filtering, totals and pagination live there, not here.
"""

from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.aggregation import (
    clean_text,
    is_fee,
    is_fine,
    is_valid_facet,
    paginate,
    resolve_date_window,
    sum_by_predicate,
)
from feeledger.core.enums import SortOrder
from feeledger.core.models import Expenditure, Student
from feeledger.core.reconciliation import TransactionFilter, collect_filter_options, reconcile_transactions
from feeledger.core.schemas import Pagination

from .schemas import (
    GrandTotals,
    StudentPaymentRow,
    StudentPaymentsData,
    TransactionFacets,
    TransactionOut,
    TransactionsData,
    TransactionTotals,
    YearDivisionFacets,
)

STUDENT_SORT_FIELDS = {"rollNo": "roll_no", "name": "name", "totalAmount": "total_amount"}


async def _active_students(db: AsyncSession) -> Sequence[Student]:
    return (await db.execute(select(Student).where(Student.is_active.is_(True)))).scalars().all()


def _payment_row(student: Student) -> StudentPaymentRow:
    payments = student.payments
    return StudentPaymentRow(
        prn=student.prn,
        roll_no=student.roll_no,
        name=student.name,
        year=student.year,
        division=student.division,
        total_fees_paid=sum_by_predicate(payments, is_fee),
        total_fine_paid=sum_by_predicate(payments, is_fine),
        total_amount=sum_by_predicate(payments),
    )


def _sort_rows(rows: List[StudentPaymentRow], sort_by: str, sort_order: SortOrder) -> List[StudentPaymentRow]:
    field = STUDENT_SORT_FIELDS.get(sort_by, "total_amount")

    # Roll numbers compare as raw strings; mixed values like "10" and "9A" are not numeric.
    def key(row: StudentPaymentRow):
        value = getattr(row, field)
        return (value is not None, value if value is not None else "")

    return sorted(rows, key=key, reverse=sort_order == SortOrder.desc)


async def student_payments(
    db: AsyncSession,
    payment_type: Optional[str] = None,
    year: Optional[str] = None,
    division: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "totalAmount",
    sort_order: SortOrder = SortOrder.desc,
    page: int = 1,
    limit: int = 10,
) -> StudentPaymentsData:
    """
    Per-student fee and fine totals for active students that have paid anything. A `fee`
    or `fine` type drops students with nothing in that bucket. Grand totals cover every
    student matching year/division/search, regardless of type.
    """
    stmt = select(Student).where(Student.is_active.is_(True))
    year, division, search = clean_text(year), clean_text(division), clean_text(search)
    if year:
        stmt = stmt.where(Student.year == year)
    if division:
        stmt = stmt.where(Student.division.ilike(f"%{division}%"))
    if search:
        stmt = stmt.where(or_(Student.prn.ilike(f"%{search}%"), Student.name.ilike(f"%{search}%")))
    students = (await db.execute(stmt)).scalars().all()

    all_payments = [p for s in students for p in s.payments]
    grand_totals = GrandTotals(
        total_fees=sum_by_predicate(all_payments, is_fee),
        total_fines=sum_by_predicate(all_payments, is_fine),
        total_amount=sum_by_predicate(all_payments),
    )

    rows = [_payment_row(s) for s in students if s.payments]
    if payment_type == "fee":
        rows = [r for r in rows if r.total_fees_paid > 0]
    elif payment_type == "fine":
        rows = [r for r in rows if r.total_fine_paid > 0]

    page_rows, info = paginate(_sort_rows(rows, sort_by, sort_order), page, limit)

    active = await _active_students(db)
    return StudentPaymentsData(
        students=page_rows,
        grand_totals=grand_totals,
        filter_options=YearDivisionFacets(
            years=sorted({s.year for s in active if is_valid_facet(s.year)}),
            divisions=sorted({s.division for s in active if is_valid_facet(s.division)}),
        ),
        pagination=Pagination.model_validate(info),
    )


def build_transaction_filter(
    scope: str = "all",
    payment_type: Optional[str] = None,
    category: Optional[str] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    division: Optional[str] = None,
    student_class: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "date",
    sort_order: SortOrder = SortOrder.desc,
    page: int = 1,
    limit: int = 10,
) -> TransactionFilter:
    """Normalize raw query parameters into the canonical transaction filter."""
    start, end = resolve_date_window(year, month, from_date, to_date)
    return TransactionFilter(
        scope=scope,
        payment_type=payment_type,
        category=clean_text(category),
        start=start,
        end=end,
        min_amount=min_amount,
        max_amount=max_amount,
        division=clean_text(division),
        student_class=clean_text(student_class),
        search=clean_text(search),
        sort_by="amount" if sort_by == "amount" else "date",
        sort_order=sort_order.value,
        page=page,
        limit=limit,
    )


async def transactions(db: AsyncSession, flt: TransactionFilter) -> TransactionsData:
    students = await _active_students(db)
    expenditures = (await db.execute(select(Expenditure))).scalars().all()
    ledger = reconcile_transactions(students, expenditures, flt)

    expenditure_categories = (await db.execute(select(Expenditure.category).distinct())).scalars().all()
    options = collect_filter_options(students, expenditure_categories)

    return TransactionsData(
        transactions=[TransactionOut(**asdict(row)) for row in ledger.transactions],
        summary=TransactionTotals(
            total_income=ledger.summary.total_income,
            total_expenditure=ledger.summary.total_expenditure,
            net_balance=ledger.summary.net_balance,
        ),
        filter_options=TransactionFacets(**asdict(options)),
        pagination=Pagination.model_validate(ledger.page),
    )
