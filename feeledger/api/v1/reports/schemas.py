from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from feeledger.core.schemas import CamelModel, Pagination


# --- Student payments ---
class StudentPaymentRow(CamelModel):
    prn: str
    roll_no: Optional[str] = None
    name: str
    year: Optional[str] = None
    division: Optional[str] = None
    total_fees_paid: Decimal
    total_fine_paid: Decimal
    total_amount: Decimal


class GrandTotals(CamelModel):
    total_fees: Decimal
    total_fines: Decimal
    total_amount: Decimal


class YearDivisionFacets(CamelModel):
    years: List[str]
    divisions: List[str]


class StudentPaymentsData(CamelModel):
    students: List[StudentPaymentRow]
    grand_totals: GrandTotals
    filter_options: YearDivisionFacets
    pagination: Pagination


# --- Transactions ---
class TransactionOut(CamelModel):
    date: Optional[datetime] = None
    transaction_type: str
    amount: Decimal
    category: Optional[str] = None
    description: Optional[str] = None
    payment_type: Optional[str] = None
    payment_mode: Optional[str] = None
    receipt_number: Optional[str] = None
    # PRN is an acronym; keep it upper-case on the wire
    student_prn: Optional[str] = Field(None, alias="studentPRN")
    student_name: Optional[str] = None
    student_roll_no: Optional[str] = None
    student_division: Optional[str] = None
    student_class: Optional[str] = None
    added_by: Optional[str] = None
    created_at: Optional[datetime] = None


class TransactionTotals(CamelModel):
    total_income: Decimal
    total_expenditure: Decimal
    net_balance: Decimal


class TransactionFacets(CamelModel):
    divisions: List[str]
    years: List[str]
    categories: List[str]
    income_categories: List[str]
    expenditure_categories: List[str]


class TransactionsData(CamelModel):
    transactions: List[TransactionOut]
    summary: TransactionTotals
    filter_options: TransactionFacets
    pagination: Pagination
