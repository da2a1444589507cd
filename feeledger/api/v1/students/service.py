"""Students service: roster CRUD, bulk import, payment records and the management listing."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.fee_ledger import service as ledger_service
from feeledger.core import notifier
from feeledger.core.aggregation import (
    OTHERS_CATEGORY,
    clean_text,
    is_fee,
    is_fine,
    is_valid_facet,
    naive_utc,
    page_info,
    paginate,
    sum_by_predicate,
    validate_amount,
)
from feeledger.core.enums import SortOrder
from feeledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from feeledger.core.models import LedgerEntry, PaymentRecord, Student
from feeledger.core.receipts import generate_receipt_number, receipt_facts
from feeledger.core.schemas import Pagination

from . import importer
from .schemas import (
    AddPaymentData,
    AddPaymentRequest,
    DeletedCount,
    DeletedStudent,
    FineHistory,
    FineSummary,
    ImportResult,
    ImportRowError,
    ManagedStudent,
    ManagementData,
    PaymentRecordResponse,
    StudentBrief,
    StudentCreate,
    StudentDetail,
    StudentListData,
    StudentResponse,
    StudentUpdate,
    YearDivisionOptions,
)

logger = logging.getLogger(__name__)

MANAGEMENT_SORT_FIELDS = ("name", "prn", "roll_no", "year", "division", "created_at", "fees_paid", "fine_paid", "total_paid")


def normalize_prn(prn: Optional[str]) -> str:
    value = (prn or "").strip().upper()
    if not value:
        raise ValidationError("Please provide a PRN")
    return value


def _clean_email(value: Optional[str]) -> Optional[str]:
    value = clean_text(value)
    return value.lower() if value else None


def _brief(student: Student) -> StudentBrief:
    return StudentBrief(prn=student.prn, name=student.name, department=student.department, email=student.email)


def _to_detail(student: Student) -> StudentDetail:
    return StudentDetail(
        **StudentResponse.model_validate(student).model_dump(),
        fines=[PaymentRecordResponse.model_validate(p) for p in student.payments],
        total_fines=sum_by_predicate(student.payments),
    )


async def get_student_by_prn(db: AsyncSession, prn: str) -> Student:
    prn = normalize_prn(prn)
    student = (await db.execute(select(Student).where(Student.prn == prn))).scalar_one_or_none()
    if not student:
        raise NotFoundError(f"Student with PRN {prn} not found")
    return student


async def get_student(db: AsyncSession, prn: str) -> StudentDetail:
    return _to_detail(await get_student_by_prn(db, prn))


# --- Roster CRUD ---
async def create_student(db: AsyncSession, payload: StudentCreate) -> StudentDetail:
    prn = normalize_prn(payload.prn)
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Please provide PRN and Name")

    exists = (await db.execute(select(Student.id).where(Student.prn == prn))).scalar_one_or_none()
    if exists:
        raise ConflictError(f"Student with PRN {prn} already exists")

    student = Student(
        prn=prn,
        name=name,
        department=clean_text(payload.department),
        academic_year=clean_text(payload.academic_year),
        semester=clean_text(payload.semester),
        year=clean_text(payload.year),
        division=clean_text(payload.division),
        roll_no=clean_text(payload.roll_no),
        email=_clean_email(payload.email),
        phone=clean_text(payload.phone),
    )
    db.add(student)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(f"Student with PRN {prn} already exists") from e
    await db.refresh(student)
    return _to_detail(student)


async def update_student(db: AsyncSession, prn: str, payload: StudentUpdate) -> StudentDetail:
    student = await get_student_by_prn(db, prn)
    data = payload.model_dump(exclude_unset=True)

    name = clean_text(data.pop("name", None))
    if name:
        student.name = name
    if "email" in data:
        student.email = _clean_email(data.pop("email"))
    if "is_active" in data:
        is_active = data.pop("is_active")
        if is_active is not None:
            student.is_active = is_active
    for field, value in data.items():
        setattr(student, field, clean_text(value))

    await db.commit()
    await db.refresh(student)
    return _to_detail(student)


async def _delete_students(db: AsyncSession, students: Sequence[Student]) -> int:
    """Remove students with their payment history and any ledger entries they own."""
    ids = [s.id for s in students]
    if ids:
        entries = (await db.execute(select(LedgerEntry).where(LedgerEntry.student_id.in_(ids)))).scalars().all()
        for entry in entries:
            await db.delete(entry)
    for student in students:
        await db.delete(student)
    await db.commit()
    return len(students)


async def delete_student(db: AsyncSession, prn: str) -> DeletedStudent:
    student = await get_student_by_prn(db, prn)
    result = DeletedStudent(prn=student.prn, name=student.name)
    await _delete_students(db, [student])
    logger.info("Deleted student %s", result.prn)
    return result


async def delete_by_division(db: AsyncSession, division: str) -> DeletedCount:
    division = clean_text(division)
    if not division:
        raise ValidationError("Please provide a division")
    students = (
        (await db.execute(select(Student).where(func.lower(Student.division) == division.lower()))).scalars().all()
    )
    if not students:
        raise NotFoundError(f"No students found in division {division}")
    return DeletedCount(deleted_count=await _delete_students(db, students))


async def delete_by_year(db: AsyncSession, year: str) -> DeletedCount:
    year = clean_text(year)
    if not year:
        raise ValidationError("Please provide a year")
    students = (await db.execute(select(Student).where(func.lower(Student.year) == year.lower()))).scalars().all()
    if not students:
        raise NotFoundError(f"No students found in year {year}")
    return DeletedCount(deleted_count=await _delete_students(db, students))


async def delete_by_class(db: AsyncSession, year: str, division: str) -> DeletedCount:
    year, division = clean_text(year), clean_text(division)
    if not year or not division:
        raise ValidationError("Please provide both year and division")
    stmt = select(Student).where(
        func.lower(Student.year) == year.lower(),
        func.lower(Student.division) == division.lower(),
    )
    students = (await db.execute(stmt)).scalars().all()
    if not students:
        raise NotFoundError(f"No students found in {year} division {division}")
    return DeletedCount(deleted_count=await _delete_students(db, students))


# --- Listing and search ---
async def list_students(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    department: Optional[str] = None,
    has_fines: bool = False,
) -> StudentListData:
    conditions = []
    department = clean_text(department)
    if department:
        conditions.append(Student.department.ilike(f"%{department}%"))
    if has_fines:
        conditions.append(Student.payments.any())

    total = (await db.execute(select(func.count(Student.id)).where(*conditions))).scalar() or 0
    info = page_info(total, page, limit)
    stmt = (
        select(Student)
        .where(*conditions)
        .order_by(Student.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    students = (await db.execute(stmt)).scalars().all()
    return StudentListData(
        students=[StudentResponse.model_validate(s) for s in students],
        pagination=Pagination.model_validate(info),
    )


async def search_students(db: AsyncSession, query: Optional[str], limit: int = 10) -> List[StudentDetail]:
    """Autocomplete over PRN and name."""
    query = clean_text(query)
    if not query:
        raise ValidationError("Please provide a search query")
    pattern = f"%{query}%"
    stmt = (
        select(Student)
        .where(or_(Student.prn.ilike(pattern), Student.name.ilike(pattern)))
        .order_by(Student.name)
        .limit(limit)
    )
    return [_to_detail(s) for s in (await db.execute(stmt)).scalars().all()]


def _year_division_options(students: Sequence[Student]) -> YearDivisionOptions:
    return YearDivisionOptions(
        years=sorted({s.year for s in students if is_valid_facet(s.year)}),
        divisions=sorted({s.division for s in students if is_valid_facet(s.division)}),
    )


def _sorted_by(rows: List[ManagedStudent], sort_by: str, sort_order: SortOrder) -> List[ManagedStudent]:
    field = sort_by if sort_by in MANAGEMENT_SORT_FIELDS else "name"

    def key(row: ManagedStudent):
        value = getattr(row, field)
        return (value is not None, value if value is not None else "")

    return sorted(rows, key=key, reverse=sort_order == SortOrder.desc)


async def management_list(
    db: AsyncSession,
    year: Optional[str] = None,
    division: Optional[str] = None,
    payment_type: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "name",
    sort_order: SortOrder = SortOrder.asc,
    page: int = 1,
    limit: int = 10,
) -> ManagementData:
    active = (await db.execute(select(Student).where(Student.is_active.is_(True)))).scalars().all()

    stmt = select(Student).where(Student.is_active.is_(True))
    year, division, search = clean_text(year), clean_text(division), clean_text(search)
    if year:
        stmt = stmt.where(Student.year.ilike(f"%{year}%"))
    if division:
        stmt = stmt.where(Student.division.ilike(f"%{division}%"))
    if search:
        stmt = stmt.where(or_(Student.prn.ilike(f"%{search}%"), Student.name.ilike(f"%{search}%")))
    students = (await db.execute(stmt)).scalars().all()

    rows: List[ManagedStudent] = []
    for student in students:
        fees, fines, total = totals_for(student)
        if payment_type == "fee" and fees <= 0:
            continue
        if payment_type == "fine" and fines <= 0:
            continue
        rows.append(
            ManagedStudent(
                **StudentResponse.model_validate(student).model_dump(),
                fees_paid=fees,
                fine_paid=fines,
                total_paid=total,
            )
        )

    page_rows, info = paginate(_sorted_by(rows, sort_by, sort_order), page, limit)
    return ManagementData(
        students=page_rows,
        filter_options=_year_division_options(active),
        pagination=Pagination.model_validate(info),
    )


# --- Payments ---
async def add_payment(
    db: AsyncSession,
    prn: str,
    payload: AddPaymentRequest,
    background_tasks: BackgroundTasks,
) -> AddPaymentData:
    """
    Record a fee or fine on the student. If the category names a catalog category with an
    active ledger entry for this student, the same payment is applied to that entry in the
    same commit. The receipt e-mail is queued after the commit and never affects the result.
    """
    amount = validate_amount(payload.amount)
    reason = clean_text(payload.reason)
    category = clean_text(payload.category) or OTHERS_CATEGORY
    student = await get_student_by_prn(db, prn)

    now = datetime.utcnow()
    paid_on = naive_utc(payload.date) or now
    receipt_number = generate_receipt_number(now)
    record = PaymentRecord(
        amount=amount,
        type=payload.type.value,
        category=category,
        reason=reason,
        receipt_number=receipt_number,
        payment_mode=payload.payment_mode.value,
        date=paid_on,
        is_paid=payload.is_paid,
        paid_date=now if payload.is_paid else None,
    )
    student.payments.append(record)

    ledger_synced = False
    entry = await ledger_service.find_sync_target(db, student, category)
    if entry is not None:
        ledger_service.apply_payment(
            entry,
            amount,
            payload.payment_mode.value,
            receipt_number,
            reason or "Manual payment synced from student profile",
            paid_on,
        )
        ledger_synced = True

    await db.commit()
    logger.info("Payment %s of %s recorded for %s", receipt_number, amount, student.prn)

    email_sent = False
    if payload.send_email:
        email_sent = notifier.dispatch_receipt(background_tasks, student.email, receipt_facts(student, record))

    return AddPaymentData(
        student=_brief(student),
        payment=PaymentRecordResponse.model_validate(record),
        receipt_number=receipt_number,
        total_fines=sum_by_predicate(student.payments),
        payment_count=len(student.payments),
        email_sent=email_sent,
        ledger_synced=ledger_synced,
    )


async def get_fine_history(db: AsyncSession, prn: str) -> FineHistory:
    student = await get_student_by_prn(db, prn)
    payments = sorted(student.payments, key=lambda p: p.date, reverse=True)
    return FineHistory(
        student=_brief(student),
        fines=[PaymentRecordResponse.model_validate(p) for p in payments],
        summary=FineSummary(
            total_fines=sum_by_predicate(payments),
            fine_count=len(payments),
            unpaid_fines=sum_by_predicate(payments, lambda p: not p.is_paid),
        ),
    )


async def mark_payment_paid(db: AsyncSession, prn: str, payment_id: UUID) -> PaymentRecordResponse:
    student = await get_student_by_prn(db, prn)
    record = next((p for p in student.payments if p.id == payment_id), None)
    if record is None:
        raise NotFoundError("Payment record not found")
    if record.is_paid:
        raise ConflictError("Payment is already marked as paid")
    record.is_paid = True
    record.paid_date = datetime.utcnow()
    await db.commit()
    return PaymentRecordResponse.model_validate(record)


# --- Bulk import ---
async def import_students(db: AsyncSession, rows: Sequence[importer.Row]) -> ImportResult:
    """
    Insert-or-update by PRN, one row at a time. Each row commits on its own, so a bad row
    is reported and skipped without undoing the rows before it. Existing payments are kept.
    """
    created = 0
    updated = 0
    errors: List[ImportRowError] = []

    for index, row in enumerate(rows, start=1):
        fields = importer.extract_student_fields(row)
        prn, name = fields["prn"], fields["name"]
        if not prn or not name:
            errors.append(
                ImportRowError(row=index, prn=prn or "N/A", error="Missing required fields (PRN Number or Student Name)")
            )
            continue

        try:
            student = (await db.execute(select(Student).where(Student.prn == prn))).scalar_one_or_none()
            if student is None:
                db.add(Student(**fields))
                is_new = True
            else:
                student.name = name
                for field, value in fields.items():
                    if field not in ("prn", "name") and value:
                        setattr(student, field, value)
                is_new = False
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning("Roster row %d (%s) failed: %s", index, prn, e)
            errors.append(ImportRowError(row=index, prn=prn, error="Could not save student record"))
            continue

        if is_new:
            created += 1
        else:
            updated += 1

    logger.info(
        "Roster import: %d rows, %d new, %d updated, %d errors", len(rows), created, updated, len(errors)
    )
    return ImportResult(
        total_records=len(rows),
        new_students=created,
        updated_students=updated,
        errors=len(errors),
        error_details=errors,
    )


def totals_for(student: Student) -> Tuple[Decimal, Decimal, Decimal]:
    """(fees, fines, total) paid by one student."""
    payments = student.payments
    return sum_by_predicate(payments, is_fee), sum_by_predicate(payments, is_fine), sum_by_predicate(payments)
