"""Expenditure schemas: CRUD plus the financial summary, monthly and detailed reports."""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import Field

from feeledger.core.schemas import CamelModel, Pagination


class ExpenditureCreate(CamelModel):
    amount: Any = None
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    date: Optional[datetime] = None
    receipt_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ExpenditureUpdate(ExpenditureCreate):
    """Same fields as create; only the ones sent are changed."""


class AdminRef(CamelModel):
    id: UUID
    name: str
    email: str


class ExpenditureResponse(CamelModel):
    id: UUID
    amount: Decimal
    description: str
    category: str
    department: Optional[str] = None
    date: datetime
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    added_by: Optional[AdminRef] = None
    created_at: datetime
    updated_at: datetime


class ExpenditureListData(CamelModel):
    expenditures: List[ExpenditureResponse]
    pagination: Pagination


class DeletedExpenditure(CamelModel):
    id: UUID
    description: str


# --- Financial summary ---
class FinancialPosition(CamelModel):
    total_income: Decimal
    total_expenditure: Decimal
    balance: Decimal
    status: str


class FinancialStatistics(CamelModel):
    total_students: int
    students_with_fines: int
    total_fines: int
    total_expenditures: int


class CategoryTotal(CamelModel):
    category: str
    amount: Decimal
    count: int


class FinancialSummaryData(CamelModel):
    financial: FinancialPosition
    statistics: FinancialStatistics
    expenditure_by_category: List[CategoryTotal]


# --- Monthly report ---
class MonthRow(CamelModel):
    month: str
    month_number: int
    income: Decimal
    expenditure: Decimal
    balance: Decimal
    fine_count: int
    expenditure_count: int


class YearlyTotals(CamelModel):
    total_income: Decimal
    total_expenditure: Decimal
    total_balance: Decimal


class MonthlyReportData(CamelModel):
    year: int
    monthly_report: List[MonthRow]
    yearly_totals: YearlyTotals


# --- Detailed report ---
class ExpenditureReportRow(CamelModel):
    id: UUID
    date: datetime
    category: str
    description: str
    amount: Decimal
    added_by: str
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class ExpenditureReportSummary(CamelModel):
    total_amount: Decimal
    total_records: int


class ExpenditureReportData(CamelModel):
    expenditures: List[ExpenditureReportRow]
    summary: ExpenditureReportSummary
    category_breakdown: List[CategoryTotal]
    pagination: Pagination
