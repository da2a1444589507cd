"""
Workbook backup of the roster and the full transaction ledger.

Three sheets: Students (active roster with paid totals), Transactions (every income and
expenditure row, newest first, unpaginated) and Summary.
"""

import io
import logging
from datetime import datetime
from typing import List, Sequence

from openpyxl import Workbook
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.aggregation import is_fee, is_fine, sum_by_predicate
from feeledger.core.models import Expenditure, Student
from feeledger.core.reconciliation import TransactionFilter, TransactionLedger, reconcile_transactions

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

STUDENTS_SHEET_NAME = "Students"
TRANSACTIONS_SHEET_NAME = "Transactions"
SUMMARY_SHEET_NAME = "Summary"

STUDENT_HEADERS = [
    "PRN",
    "Roll No",
    "Name",
    "Year",
    "Division",
    "Department",
    "Email",
    "Phone",
    "Fees Paid",
    "Fines Paid",
    "Total Paid",
    "Payment Count",
]
TRANSACTION_HEADERS = [
    "Date",
    "Type",
    "Payment Type",
    "Category",
    "Description",
    "Amount",
    "Receipt Number",
    "Payment Mode",
    "Student PRN",
    "Student Name",
    "Class",
    "Division",
    "Added By",
]


def backup_filename(now: datetime) -> str:
    return f"backup-{now:%Y%m%d}.xlsx"


def _roster_order(student: Student):
    return (student.year or "", student.division or "", student.roll_no or "", student.prn)


def _write_students(ws, students: Sequence[Student]) -> None:
    ws.append(STUDENT_HEADERS)
    for s in sorted(students, key=_roster_order):
        payments = s.payments or []
        ws.append(
            [
                s.prn,
                s.roll_no,
                s.name,
                s.year,
                s.division,
                s.department,
                s.email,
                s.phone,
                sum_by_predicate(payments, is_fee),
                sum_by_predicate(payments, is_fine),
                sum_by_predicate(payments),
                len(payments),
            ]
        )


def _write_transactions(ws, ledger: TransactionLedger) -> None:
    ws.append(TRANSACTION_HEADERS)
    for row in ledger.transactions:
        ws.append(
            [
                row.date,
                row.transaction_type,
                row.payment_type,
                row.category,
                row.description,
                row.amount,
                row.receipt_number,
                row.payment_mode,
                row.student_prn,
                row.student_name,
                row.student_class,
                row.student_division,
                row.added_by,
            ]
        )


def _write_summary(ws, generated_at: datetime, student_count: int, ledger: TransactionLedger) -> None:
    rows: List[list] = [
        ["Generated At", generated_at],
        ["Total Students", student_count],
        ["Transactions", ledger.page.total],
        ["Total Income", ledger.summary.total_income],
        ["Total Expenditure", ledger.summary.total_expenditure],
        ["Net Balance", ledger.summary.net_balance],
    ]
    for row in rows:
        ws.append(row)


async def build_backup(db: AsyncSession, generated_at: datetime) -> bytes:
    """Serialize active students and every transaction into an .xlsx workbook."""
    students = (await db.execute(select(Student).where(Student.is_active.is_(True)))).scalars().all()
    expenditures = (await db.execute(select(Expenditure))).scalars().all()

    row_count = sum(len(s.payments or []) for s in students) + len(expenditures)
    ledger = reconcile_transactions(students, expenditures, TransactionFilter(limit=max(row_count, 1)))

    wb = Workbook()
    ws_students = wb.active
    ws_students.title = STUDENTS_SHEET_NAME
    _write_students(ws_students, students)
    _write_transactions(wb.create_sheet(TRANSACTIONS_SHEET_NAME), ledger)
    _write_summary(wb.create_sheet(SUMMARY_SHEET_NAME), generated_at, len(students), ledger)

    bio = io.BytesIO()
    wb.save(bio)
    logger.info("Backup built: %d students, %d transactions", len(students), ledger.page.total)
    return bio.getvalue()
