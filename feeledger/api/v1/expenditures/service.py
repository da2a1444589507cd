"""Expenditures service: CRUD, financial summary, monthly report and detailed expenditure report."""

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.aggregation import (
    GroupTotal,
    all_of,
    clean_text,
    group_sum,
    in_amount_range,
    in_date_range,
    naive_utc,
    page_info,
    paginate,
    resolve_date_window,
    sort_breakdown_desc,
    sum_by_predicate,
    validate_amount,
    year_window,
)
from feeledger.core.enums import SortOrder
from feeledger.core.exceptions import NotFoundError, ValidationError
from feeledger.core.models import Expenditure, PaymentRecord, Student
from feeledger.core.reconciliation import added_by_name
from feeledger.core.schemas import Pagination

from .schemas import (
    AdminRef,
    CategoryTotal,
    DeletedExpenditure,
    ExpenditureCreate,
    ExpenditureListData,
    ExpenditureReportData,
    ExpenditureReportRow,
    ExpenditureReportSummary,
    ExpenditureResponse,
    ExpenditureUpdate,
    FinancialPosition,
    FinancialStatistics,
    FinancialSummaryData,
    MonthlyReportData,
    MonthRow,
    YearlyTotals,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"
REPORT_SORT_FIELDS = ("date", "amount", "category", "description", "created_at")


def _to_response(exp: Expenditure) -> ExpenditureResponse:
    admin = exp.added_by_admin
    return ExpenditureResponse(
        id=exp.id,
        amount=exp.amount,
        description=exp.description,
        category=exp.category,
        department=exp.department,
        date=exp.date,
        receipt_number=exp.receipt_number,
        notes=exp.notes,
        added_by=AdminRef(id=admin.id, name=admin.name, email=admin.email) if admin is not None else None,
        created_at=exp.created_at,
        updated_at=exp.updated_at,
    )


def _breakdown(groups) -> List[CategoryTotal]:
    return [CategoryTotal(category=name, amount=g.amount, count=g.count) for name, g in sort_breakdown_desc(groups)]


async def _get(db: AsyncSession, expenditure_id: UUID) -> Expenditure:
    exp = await db.get(Expenditure, expenditure_id)
    if not exp:
        raise NotFoundError("Expenditure not found")
    return exp


# --- CRUD ---
async def create_expenditure(db: AsyncSession, admin_id: UUID, payload: ExpenditureCreate) -> ExpenditureResponse:
    description = clean_text(payload.description)
    if payload.amount is None or not description:
        raise ValidationError("Please provide amount and description")
    amount = validate_amount(payload.amount)

    exp = Expenditure(
        amount=amount,
        description=description,
        category=clean_text(payload.category) or DEFAULT_CATEGORY,
        department=clean_text(payload.department),
        date=naive_utc(payload.date) or datetime.utcnow(),
        receipt_number=clean_text(payload.receipt_number),
        notes=clean_text(payload.notes),
        added_by=admin_id,
    )
    db.add(exp)
    await db.commit()
    await db.refresh(exp)
    logger.info("Expenditure of %s recorded under %s", amount, exp.category)
    return _to_response(exp)


async def list_expenditures(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    category: Optional[str] = None,
    department: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ExpenditureListData:
    conditions = []
    category, department = clean_text(category), clean_text(department)
    if category:
        conditions.append(Expenditure.category == category)
    if department:
        conditions.append(Expenditure.department.ilike(f"%{department}%"))
    start, end = resolve_date_window(from_date=start_date, to_date=end_date)
    if start is not None:
        conditions.append(Expenditure.date >= start)
    if end is not None:
        conditions.append(Expenditure.date <= end)

    total = (await db.execute(select(func.count(Expenditure.id)).where(*conditions))).scalar() or 0
    info = page_info(total, page, limit)
    stmt = (
        select(Expenditure)
        .where(*conditions)
        .order_by(Expenditure.date.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return ExpenditureListData(
        expenditures=[_to_response(e) for e in rows],
        pagination=Pagination.model_validate(info),
    )


async def get_expenditure(db: AsyncSession, expenditure_id: UUID) -> ExpenditureResponse:
    return _to_response(await _get(db, expenditure_id))


async def update_expenditure(
    db: AsyncSession, expenditure_id: UUID, payload: ExpenditureUpdate
) -> ExpenditureResponse:
    exp = await _get(db, expenditure_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("amount") is not None:
        exp.amount = validate_amount(data["amount"])
    description = clean_text(data.get("description"))
    if description:
        exp.description = description
    category = clean_text(data.get("category"))
    if category:
        exp.category = category
    if data.get("date") is not None:
        exp.date = naive_utc(data["date"])
    for field in ("department", "receipt_number", "notes"):
        if field in data:
            setattr(exp, field, clean_text(data[field]))

    await db.commit()
    await db.refresh(exp)
    return _to_response(exp)


async def delete_expenditure(db: AsyncSession, expenditure_id: UUID) -> DeletedExpenditure:
    exp = await _get(db, expenditure_id)
    result = DeletedExpenditure(id=exp.id, description=exp.description)
    await db.delete(exp)
    await db.commit()
    return result


# --- Reports ---
async def _income_rows(db: AsyncSession, start: Optional[datetime] = None, end: Optional[datetime] = None):
    """Every recorded payment, whether or not its student is still active."""
    stmt = select(PaymentRecord.amount, PaymentRecord.type, PaymentRecord.date)
    if start is not None:
        stmt = stmt.where(PaymentRecord.date >= start)
    if end is not None:
        stmt = stmt.where(PaymentRecord.date <= end)
    return (await db.execute(stmt)).all()


async def _expenditure_rows(db: AsyncSession, start: Optional[datetime] = None, end: Optional[datetime] = None):
    stmt = select(Expenditure.amount, Expenditure.category, Expenditure.date)
    if start is not None:
        stmt = stmt.where(Expenditure.date >= start)
    if end is not None:
        stmt = stmt.where(Expenditure.date <= end)
    return (await db.execute(stmt)).all()


async def financial_summary(db: AsyncSession) -> FinancialSummaryData:
    income = await _income_rows(db)
    spent = await _expenditure_rows(db)

    total_income = sum_by_predicate(income)
    total_expenditure = sum_by_predicate(spent)
    balance = total_income - total_expenditure

    total_students = (await db.execute(select(func.count(Student.id)))).scalar() or 0
    students_with_fines = (
        await db.execute(select(func.count(distinct(PaymentRecord.student_id))))
    ).scalar() or 0

    return FinancialSummaryData(
        financial=FinancialPosition(
            total_income=total_income,
            total_expenditure=total_expenditure,
            balance=balance,
            status="surplus" if balance >= 0 else "deficit",
        ),
        statistics=FinancialStatistics(
            total_students=total_students,
            students_with_fines=students_with_fines,
            total_fines=len(income),
            total_expenditures=len(spent),
        ),
        expenditure_by_category=_breakdown(group_sum(spent, lambda row: row.category)),
    )


async def monthly_report(db: AsyncSession, year: Optional[int] = None) -> MonthlyReportData:
    """Twelve calendar months, always all present, zero-filled where nothing happened."""
    year = year or datetime.utcnow().year
    start, end = year_window(year)
    income_by_month = group_sum(await _income_rows(db, start, end), lambda row: row.date.month)
    spent_by_month = group_sum(await _expenditure_rows(db, start, end), lambda row: row.date.month)

    report: List[MonthRow] = []
    for number in range(1, 13):
        income = income_by_month.get(number, GroupTotal())
        spent = spent_by_month.get(number, GroupTotal())
        report.append(
            MonthRow(
                month=calendar.month_abbr[number],
                month_number=number,
                income=income.amount,
                expenditure=spent.amount,
                balance=income.amount - spent.amount,
                fine_count=income.count,
                expenditure_count=spent.count,
            )
        )

    totals = YearlyTotals(
        total_income=sum((m.income for m in report), Decimal("0")),
        total_expenditure=sum((m.expenditure for m in report), Decimal("0")),
        total_balance=sum((m.balance for m in report), Decimal("0")),
    )
    return MonthlyReportData(year=year, monthly_report=report, yearly_totals=totals)


async def expenditure_report(
    db: AsyncSession,
    year: Optional[int] = None,
    month: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    category: Optional[str] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    sort_by: str = "date",
    sort_order: SortOrder = SortOrder.desc,
    page: int = 1,
    limit: int = 10,
) -> ExpenditureReportData:
    start, end = resolve_date_window(year, month, from_date, to_date)
    category = clean_text(category)

    keep = all_of(
        in_date_range(start, end) if start is not None or end is not None else None,
        in_amount_range(min_amount, max_amount) if min_amount is not None or max_amount is not None else None,
        (lambda e: e.category == category) if category else None,
    )
    expenditures = [e for e in (await db.execute(select(Expenditure))).scalars().all() if keep(e)]

    field = sort_by if sort_by in REPORT_SORT_FIELDS else "date"
    expenditures.sort(key=lambda e: getattr(e, field), reverse=sort_order == SortOrder.desc)
    page_rows, info = paginate(expenditures, page, limit)

    return ExpenditureReportData(
        expenditures=[
            ExpenditureReportRow(
                id=e.id,
                date=e.date,
                category=e.category,
                description=e.description,
                amount=e.amount,
                added_by=added_by_name(e),
                receipt_number=e.receipt_number,
                notes=e.notes,
                created_at=e.created_at,
            )
            for e in page_rows
        ],
        summary=ExpenditureReportSummary(
            total_amount=sum_by_predicate(expenditures),
            total_records=len(expenditures),
        ),
        category_breakdown=_breakdown(group_sum(expenditures, lambda e: e.category)),
        pagination=Pagination.model_validate(info),
    )
