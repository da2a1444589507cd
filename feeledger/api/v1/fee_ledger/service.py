"""
Fee ledger service: expected-vs-paid tracking per student and payment category.

An entry moves unpaid -> partial -> paid and never back. `paid_amount` and `status` are
caches of the payment list; `recompute` is the only writer, and every payment goes
through `apply_payment`. Overpayment is kept on the entry and leaves it `paid`.
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core import notifier
from feeledger.core.aggregation import (
    clean_text,
    is_valid_facet,
    naive_utc,
    paginate,
    sum_by_predicate,
    to_decimal,
    validate_amount,
)
from feeledger.core.enums import LedgerStatus, PaymentType, SortOrder
from feeledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from feeledger.core.models import LedgerEntry, LedgerPayment, PaymentCategory, PaymentRecord, Student
from feeledger.core.receipts import generate_receipt_number, receipt_facts
from feeledger.core.schemas import Pagination

from .schemas import (
    BulkDeleteData,
    BulkDeleteRequest,
    CategoryOption,
    ClassSummaryData,
    ClassSummaryItem,
    DeletableCategory,
    DeletableOptions,
    GenerateLedgerData,
    GenerateLedgerRequest,
    LedgerBatch,
    LedgerEntryResponse,
    LedgerFilterOptions,
    LedgerListData,
    LedgerPayData,
    LedgerPaymentResponse,
    LedgerPayRequest,
    LedgerSummary,
    StudentLedgerData,
)

logger = logging.getLogger(__name__)

LEDGER_PAGE_LIMIT = 20
LEDGER_SORT_FIELDS = ("student_name", "student_prn", "student_roll_no", "total_amount", "paid_amount", "status", "created_at")


# --- Status engine ---
def compute_status(paid_total: Decimal, expected: Decimal) -> LedgerStatus:
    """Status as a pure function of what was paid against what is expected."""
    paid_total = to_decimal(paid_total)
    if paid_total <= 0:
        return LedgerStatus.unpaid
    if paid_total >= to_decimal(expected):
        return LedgerStatus.paid
    return LedgerStatus.partial


def recompute(entry: LedgerEntry) -> None:
    entry.paid_amount = sum_by_predicate(entry.payments)
    entry.status = compute_status(entry.paid_amount, entry.total_amount).value


def apply_payment(
    entry: LedgerEntry,
    amount: Decimal,
    payment_mode: str,
    receipt_number: Optional[str] = None,
    remarks: Optional[str] = None,
    date: Optional[datetime] = None,
) -> LedgerPayment:
    """Append a payment to the entry and refresh its derived totals. Caller commits."""
    payment = LedgerPayment(
        amount=amount,
        payment_mode=payment_mode,
        receipt_number=receipt_number,
        remarks=remarks,
        date=date or datetime.utcnow(),
    )
    entry.payments.append(payment)
    recompute(entry)
    return payment


def pending_amount(entry: LedgerEntry) -> Decimal:
    return max(to_decimal(entry.total_amount) - to_decimal(entry.paid_amount), Decimal("0"))


def _to_response(entry: LedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        student_id=entry.student_id,
        category_id=entry.category_id,
        student_prn=entry.student_prn,
        student_name=entry.student_name,
        student_roll_no=entry.student_roll_no,
        student_class=entry.student_class,
        student_division=entry.student_division,
        category_name=entry.category_name,
        total_amount=entry.total_amount,
        paid_amount=entry.paid_amount,
        pending_amount=pending_amount(entry),
        status=entry.status,
        academic_year=entry.academic_year,
        due_date=entry.due_date,
        is_active=entry.is_active,
        payments=[LedgerPaymentResponse.model_validate(p) for p in entry.payments],
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def summarize(entries: Iterable[LedgerEntry]) -> LedgerSummary:
    summary = LedgerSummary()
    for entry in entries:
        summary.total_entries += 1
        summary.total_expected += to_decimal(entry.total_amount)
        summary.total_collected += to_decimal(entry.paid_amount)
        summary.total_pending += pending_amount(entry)
        if entry.status == LedgerStatus.paid.value:
            summary.fully_paid += 1
        elif entry.status == LedgerStatus.partial.value:
            summary.partially_paid += 1
        else:
            summary.unpaid += 1
    return summary


async def _get_entry(db: AsyncSession, entry_id: UUID) -> LedgerEntry:
    entry = await db.get(LedgerEntry, entry_id)
    if not entry:
        raise NotFoundError("Ledger entry not found")
    return entry


# --- Generation ---
async def generate_entries(db: AsyncSession, payload: GenerateLedgerRequest) -> GenerateLedgerData:
    """
    One entry per active student in the target classes that has none yet for this category
    and academic year. Running it again with the same input creates nothing new.
    """
    category = await db.get(PaymentCategory, payload.category_id)
    if not category:
        raise NotFoundError("Payment category not found")
    if not category.is_active:
        raise ValidationError("Payment category is inactive")

    classes = [c.strip() for c in (payload.classes or category.applicable_classes or []) if c and c.strip()]
    if not classes:
        raise ValidationError("No classes specified for ledger generation")

    if payload.amount is not None:
        amount = validate_amount(payload.amount)
    else:
        amount = validate_amount(category.amount, "Category amount")

    stmt = select(Student).where(
        Student.is_active.is_(True),
        func.upper(Student.year).in_([c.upper() for c in classes]),
    )
    division = clean_text(payload.division)
    if division:
        stmt = stmt.where(func.upper(Student.division) == division.upper())
    students = (await db.execute(stmt.order_by(Student.prn))).scalars().all()
    if not students:
        raise NotFoundError("No students found in specified classes")

    existing_rows = await db.execute(
        select(LedgerEntry.student_id, LedgerEntry.academic_year).where(
            LedgerEntry.category_id == category.id,
            LedgerEntry.student_id.in_([s.id for s in students]),
        )
    )
    existing: Set[Tuple[UUID, Optional[str]]] = {(sid, year) for sid, year in existing_rows.all()}

    requested_year = clean_text(payload.academic_year)
    due_date = naive_utc(payload.due_date)
    created = 0
    for student in students:
        academic_year = requested_year or student.academic_year
        if (student.id, academic_year) in existing:
            continue
        db.add(
            LedgerEntry(
                student_id=student.id,
                category_id=category.id,
                student_prn=student.prn,
                student_name=student.name,
                student_roll_no=student.roll_no,
                student_class=student.year,
                student_division=student.division,
                category_name=category.name,
                total_amount=amount,
                paid_amount=Decimal("0"),
                status=LedgerStatus.unpaid.value,
                academic_year=academic_year,
                due_date=due_date,
            )
        )
        existing.add((student.id, academic_year))
        created += 1

    await db.commit()
    logger.info(
        "Ledger generation for %s in %s: %d created, %d skipped",
        category.name,
        ", ".join(classes),
        created,
        len(students) - created,
    )
    return GenerateLedgerData(
        category=category.name,
        classes=classes,
        total_students=len(students),
        created=created,
        skipped=len(students) - created,
    )


# --- Payment ---
async def pay_entry(
    db: AsyncSession,
    entry_id: UUID,
    payload: LedgerPayRequest,
    background_tasks: BackgroundTasks,
) -> LedgerPayData:
    amount = validate_amount(payload.amount)
    entry = await _get_entry(db, entry_id)
    if not entry.is_active:
        raise ValidationError("This ledger entry is no longer active")

    now = datetime.utcnow()
    paid_on = naive_utc(payload.date) or now
    receipt_number = generate_receipt_number(now)
    remarks = clean_text(payload.remarks)
    payment = apply_payment(entry, amount, payload.payment_mode.value, receipt_number, remarks, paid_on)

    # Mirror into the student's own payment history so it counts as income.
    student: Optional[Student] = entry.student
    record: Optional[PaymentRecord] = None
    if student is not None:
        category = entry.category
        record = PaymentRecord(
            amount=amount,
            type=category.type if category is not None else PaymentType.fee.value,
            category=entry.category_name,
            reason=remarks or f"{entry.category_name} payment",
            receipt_number=receipt_number,
            payment_mode=payload.payment_mode.value,
            date=paid_on,
            is_paid=True,
            paid_date=now,
        )
        student.payments.append(record)

    await db.commit()
    logger.info("Ledger payment %s of %s recorded against entry %s", receipt_number, amount, entry.id)

    email_sent = False
    if payload.send_email and student is not None and record is not None:
        email_sent = notifier.dispatch_receipt(background_tasks, student.email, receipt_facts(student, record))

    return LedgerPayData(
        entry=_to_response(entry),
        payment=LedgerPaymentResponse.model_validate(payment),
        receipt_number=receipt_number,
        email_sent=email_sent,
    )


async def find_sync_target(db: AsyncSession, student: Student, category_name: str) -> Optional[LedgerEntry]:
    """Most recent active ledger entry of this student whose catalog category matches by name."""
    category = (
        await db.execute(
            select(PaymentCategory).where(func.lower(PaymentCategory.name) == category_name.strip().lower()).limit(1)
        )
    ).scalar_one_or_none()
    if category is None:
        return None
    stmt = (
        select(LedgerEntry)
        .where(
            LedgerEntry.student_id == student.id,
            LedgerEntry.category_id == category.id,
            LedgerEntry.is_active.is_(True),
        )
        .order_by(LedgerEntry.created_at.desc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


# --- Reads ---
def _list_statement(
    student_class: Optional[str],
    division: Optional[str],
    category_id: Optional[UUID],
    status: Optional[LedgerStatus],
    pending_only: bool,
    search: Optional[str],
):
    stmt = select(LedgerEntry).where(LedgerEntry.is_active.is_(True))
    if student_class:
        stmt = stmt.where(LedgerEntry.student_class.ilike(f"%{student_class}%"))
    if division:
        stmt = stmt.where(LedgerEntry.student_division.ilike(f"%{division}%"))
    if category_id:
        stmt = stmt.where(LedgerEntry.category_id == category_id)
    if pending_only:
        stmt = stmt.where(LedgerEntry.status != LedgerStatus.paid.value)
    elif status:
        stmt = stmt.where(LedgerEntry.status == status.value)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                LedgerEntry.student_prn.ilike(pattern),
                LedgerEntry.student_name.ilike(pattern),
                LedgerEntry.student_roll_no.ilike(pattern),
            )
        )
    return stmt


def _sort_entries(entries: List[LedgerEntry], sort_by: str, sort_order: SortOrder) -> List[LedgerEntry]:
    field = sort_by if sort_by in LEDGER_SORT_FIELDS else "student_name"

    def key(entry: LedgerEntry):
        value = getattr(entry, field)
        # Missing values first in ascending order
        return (value is not None, value if value is not None else "")

    return sorted(entries, key=key, reverse=sort_order == SortOrder.desc)


async def _filter_options(db: AsyncSession) -> LedgerFilterOptions:
    active_entries = (
        (await db.execute(select(LedgerEntry).where(LedgerEntry.is_active.is_(True)))).scalars().all()
    )
    student_facets = (
        await db.execute(select(Student.year, Student.division).where(Student.is_active.is_(True)))
    ).all()

    classes = {e.student_class for e in active_entries} | {year for year, _ in student_facets}
    divisions = {e.student_division for e in active_entries} | {division for _, division in student_facets}

    categories = (
        (await db.execute(select(PaymentCategory).where(PaymentCategory.is_active.is_(True)).order_by(PaymentCategory.name)))
        .scalars()
        .all()
    )

    batches: Dict[Tuple[UUID, str, Optional[str], Optional[str]], int] = defaultdict(int)
    for entry in active_entries:
        batches[(entry.category_id, entry.category_name, entry.student_class, entry.academic_year)] += 1
    ledgers = [
        LedgerBatch(
            category_id=category_id,
            category_name=category_name,
            student_class=student_class,
            academic_year=academic_year,
            entries=count,
        )
        for (category_id, category_name, student_class, academic_year), count in batches.items()
    ]
    # Newest academic year first, then class
    ledgers.sort(key=lambda b: (b.student_class or ""))
    ledgers.sort(key=lambda b: (b.academic_year or ""), reverse=True)

    return LedgerFilterOptions(
        classes=sorted(c for c in classes if is_valid_facet(c)),
        divisions=sorted(d for d in divisions if is_valid_facet(d)),
        categories=[
            CategoryOption(id=c.id, name=c.name, type=c.type, amount=c.amount) for c in categories
        ],
        ledgers=ledgers,
    )


async def list_entries(
    db: AsyncSession,
    student_class: Optional[str] = None,
    division: Optional[str] = None,
    category_id: Optional[UUID] = None,
    status: Optional[LedgerStatus] = None,
    pending_only: bool = False,
    search: Optional[str] = None,
    sort_by: str = "student_name",
    sort_order: SortOrder = SortOrder.asc,
    page: int = 1,
    limit: int = LEDGER_PAGE_LIMIT,
) -> LedgerListData:
    stmt = _list_statement(
        clean_text(student_class), clean_text(division), category_id, status, pending_only, clean_text(search)
    )
    entries = list((await db.execute(stmt)).scalars().all())
    ordered = _sort_entries(entries, sort_by, sort_order)
    page_rows, info = paginate(ordered, page, limit)
    return LedgerListData(
        entries=[_to_response(e) for e in page_rows],
        summary=summarize(entries),
        filter_options=await _filter_options(db),
        pagination=Pagination.model_validate(info),
    )


async def class_summary(
    db: AsyncSession,
    category_id: Optional[UUID] = None,
    academic_year: Optional[str] = None,
) -> ClassSummaryData:
    stmt = select(LedgerEntry).where(LedgerEntry.is_active.is_(True))
    if category_id:
        stmt = stmt.where(LedgerEntry.category_id == category_id)
    academic_year = clean_text(academic_year)
    if academic_year:
        stmt = stmt.where(LedgerEntry.academic_year == academic_year)
    entries = (await db.execute(stmt)).scalars().all()

    by_class: Dict[Optional[str], List[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        by_class[entry.student_class].append(entry)

    items = [
        ClassSummaryItem(student_class=name, **summarize(rows).model_dump())
        for name, rows in sorted(by_class.items(), key=lambda kv: kv[0] or "")
    ]
    return ClassSummaryData(class_summary=items, overall=summarize(entries))


async def get_entry(db: AsyncSession, entry_id: UUID) -> LedgerEntryResponse:
    return _to_response(await _get_entry(db, entry_id))


async def student_ledgers(db: AsyncSession, prn: str) -> StudentLedgerData:
    prn = (prn or "").strip().upper()
    student = (await db.execute(select(Student).where(Student.prn == prn))).scalar_one_or_none()
    if not student:
        raise NotFoundError(f"Student with PRN {prn} not found")
    entries = (
        (
            await db.execute(
                select(LedgerEntry)
                .where(LedgerEntry.student_id == student.id, LedgerEntry.is_active.is_(True))
                .order_by(LedgerEntry.created_at)
            )
        )
        .scalars()
        .all()
    )
    return StudentLedgerData(
        student_prn=student.prn,
        student_name=student.name,
        entries=[_to_response(e) for e in entries],
        summary=summarize(entries),
    )


# --- Deletion ---
async def delete_entry(db: AsyncSession, entry_id: UUID) -> None:
    entry = await _get_entry(db, entry_id)
    if entry.payments:
        raise ConflictError("Cannot delete ledger entry with existing payments")
    await db.delete(entry)
    await db.commit()


async def bulk_delete(db: AsyncSession, payload: BulkDeleteRequest) -> BulkDeleteData:
    """Delete a class's entries that have no payments; paid-into entries are only counted."""
    stmt = select(LedgerEntry).where(func.upper(LedgerEntry.student_class) == payload.student_class.strip().upper())
    if payload.category_id:
        stmt = stmt.where(LedgerEntry.category_id == payload.category_id)
    academic_year = clean_text(payload.academic_year)
    if academic_year:
        stmt = stmt.where(LedgerEntry.academic_year == academic_year)
    entries = (await db.execute(stmt)).scalars().all()
    if not entries:
        raise NotFoundError("No ledger entries found for the specified criteria")

    deletable = [e for e in entries if not e.payments]
    skipped = len(entries) - len(deletable)
    if not deletable:
        raise ConflictError("All matching ledger entries have payments and cannot be deleted")

    for entry in deletable:
        await db.delete(entry)
    await db.commit()
    logger.info("Bulk deleted %d ledger entries for %s (%d skipped)", len(deletable), payload.student_class, skipped)
    return BulkDeleteData(
        deleted_count=len(deletable),
        skipped_count=skipped,
        skipped_reason="Entries with payments were skipped" if skipped else None,
    )


async def deletable_options(db: AsyncSession) -> DeletableOptions:
    entries = (await db.execute(select(LedgerEntry).where(LedgerEntry.is_active.is_(True)))).scalars().all()
    deletable = [e for e in entries if not e.payments]
    category_ids = {e.category_id for e in deletable}
    categories: List[PaymentCategory] = []
    if category_ids:
        categories = (
            (
                await db.execute(
                    select(PaymentCategory)
                    .where(PaymentCategory.id.in_(category_ids), PaymentCategory.is_active.is_(True))
                    .order_by(PaymentCategory.name)
                )
            )
            .scalars()
            .all()
        )
    return DeletableOptions(
        classes=sorted({e.student_class for e in deletable if e.student_class}),
        categories=[DeletableCategory(id=c.id, name=c.name) for c in categories],
    )
