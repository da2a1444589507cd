"""Student schemas: roster CRUD, payment records, management listing, roster import."""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import Field

from feeledger.core.enums import PaymentMode, PaymentType
from feeledger.core.schemas import CamelModel, Pagination


# --- Roster ---
class StudentCreate(CamelModel):
    prn: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    department: Optional[str] = None
    academic_year: Optional[str] = None
    semester: Optional[str] = None
    year: Optional[str] = None
    division: Optional[str] = None
    roll_no: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class StudentUpdate(CamelModel):
    """PRN is immutable and therefore absent here."""

    name: Optional[str] = None
    department: Optional[str] = None
    academic_year: Optional[str] = None
    semester: Optional[str] = None
    year: Optional[str] = None
    division: Optional[str] = None
    roll_no: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class ClassDeleteRequest(CamelModel):
    year: str = Field(..., min_length=1)
    division: str = Field(..., min_length=1)


class PaymentRecordResponse(CamelModel):
    id: UUID
    amount: Decimal
    type: str
    category: str
    reason: Optional[str] = None
    receipt_number: Optional[str] = None
    payment_mode: str
    date: datetime
    is_paid: bool
    paid_date: Optional[datetime] = None
    created_at: datetime


class StudentResponse(CamelModel):
    id: UUID
    prn: str
    name: str
    department: Optional[str] = None
    academic_year: Optional[str] = None
    semester: Optional[str] = None
    year: Optional[str] = None
    division: Optional[str] = None
    roll_no: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class StudentDetail(StudentResponse):
    fines: List[PaymentRecordResponse] = []
    total_fines: Decimal = Decimal("0")


class StudentBrief(CamelModel):
    prn: str
    name: str
    department: Optional[str] = None
    email: Optional[str] = None


class StudentListData(CamelModel):
    students: List[StudentResponse]
    pagination: Pagination


class DeletedStudent(CamelModel):
    prn: str
    name: str


class DeletedCount(CamelModel):
    deleted_count: int


# --- Management listing ---
class ManagedStudent(StudentResponse):
    fees_paid: Decimal
    fine_paid: Decimal
    total_paid: Decimal


class YearDivisionOptions(CamelModel):
    years: List[str]
    divisions: List[str]


class ManagementData(CamelModel):
    students: List[ManagedStudent]
    filter_options: YearDivisionOptions
    pagination: Pagination


# --- Payments ---
class AddPaymentRequest(CamelModel):
    # Validated by the service so every write path shares the same amount rules
    amount: Any = None
    reason: Optional[str] = Field(None, max_length=1000)
    type: PaymentType = PaymentType.fine
    category: Optional[str] = Field(None, max_length=100)
    payment_mode: PaymentMode = PaymentMode.cash
    date: Optional[datetime] = None
    is_paid: bool = True
    send_email: bool = True


class AddPaymentData(CamelModel):
    student: StudentBrief
    payment: PaymentRecordResponse
    receipt_number: str
    total_fines: Decimal
    payment_count: int
    email_sent: bool
    ledger_synced: bool = False


class FineSummary(CamelModel):
    total_fines: Decimal
    fine_count: int
    unpaid_fines: Decimal


class FineHistory(CamelModel):
    student: StudentBrief
    fines: List[PaymentRecordResponse]
    summary: FineSummary


# --- Import ---
class ImportRowError(CamelModel):
    row: int
    prn: str
    error: str


class ImportResult(CamelModel):
    total_records: int
    new_students: int
    updated_students: int
    errors: int
    error_details: List[ImportRowError] = []
