"""Fee ledger schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import Field

from feeledger.core.enums import PaymentMode
from feeledger.core.schemas import CamelModel, Pagination


class LedgerPaymentResponse(CamelModel):
    id: UUID
    amount: Decimal
    payment_mode: str
    receipt_number: Optional[str] = None
    remarks: Optional[str] = None
    date: datetime


class LedgerEntryResponse(CamelModel):
    id: UUID
    student_id: UUID
    category_id: UUID
    student_prn: str
    student_name: str
    student_roll_no: Optional[str] = None
    student_class: Optional[str] = None
    student_division: Optional[str] = None
    category_name: str
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal = Decimal("0")
    status: str
    academic_year: Optional[str] = None
    due_date: Optional[datetime] = None
    is_active: bool
    payments: List[LedgerPaymentResponse] = []
    created_at: datetime
    updated_at: datetime


# --- Generation ---
class GenerateLedgerRequest(CamelModel):
    category_id: UUID
    # Falls back to the category's applicable classes
    classes: Optional[List[str]] = None
    division: Optional[str] = None
    # Falls back to the category's default amount
    amount: Any = None
    academic_year: Optional[str] = Field(None, max_length=20)
    due_date: Optional[datetime] = None


class GenerateLedgerData(CamelModel):
    category: str
    classes: List[str]
    total_students: int
    created: int
    skipped: int


# --- Payment ---
class LedgerPayRequest(CamelModel):
    amount: Any = None
    payment_mode: PaymentMode = PaymentMode.cash
    remarks: Optional[str] = Field(None, max_length=1000)
    date: Optional[datetime] = None
    send_email: bool = True


class LedgerPayData(CamelModel):
    entry: LedgerEntryResponse
    payment: LedgerPaymentResponse
    receipt_number: str
    email_sent: bool


# --- Listing ---
class LedgerSummary(CamelModel):
    total_expected: Decimal = Decimal("0")
    total_collected: Decimal = Decimal("0")
    total_pending: Decimal = Decimal("0")
    total_entries: int = 0
    fully_paid: int = 0
    partially_paid: int = 0
    unpaid: int = 0


class CategoryOption(CamelModel):
    id: UUID
    name: str
    type: str
    amount: Decimal


class LedgerBatch(CamelModel):
    category_id: UUID
    category_name: str
    student_class: Optional[str] = None
    academic_year: Optional[str] = None
    entries: int


class LedgerFilterOptions(CamelModel):
    classes: List[str]
    divisions: List[str]
    categories: List[CategoryOption]
    ledgers: List[LedgerBatch]


class LedgerListData(CamelModel):
    entries: List[LedgerEntryResponse]
    summary: LedgerSummary
    filter_options: LedgerFilterOptions
    pagination: Pagination


class ClassSummaryItem(LedgerSummary):
    student_class: Optional[str] = None


class ClassSummaryData(CamelModel):
    class_summary: List[ClassSummaryItem]
    overall: LedgerSummary


class StudentLedgerData(CamelModel):
    student_prn: str
    student_name: str
    entries: List[LedgerEntryResponse]
    summary: LedgerSummary


# --- Deletion ---
class BulkDeleteRequest(CamelModel):
    student_class: str = Field(..., min_length=1)
    category_id: Optional[UUID] = None
    academic_year: Optional[str] = None


class BulkDeleteData(CamelModel):
    deleted_count: int
    skipped_count: int
    skipped_reason: Optional[str] = None


class DeletableCategory(CamelModel):
    id: UUID
    name: str


class DeletableOptions(CamelModel):
    classes: List[str]
    categories: List[DeletableCategory]
