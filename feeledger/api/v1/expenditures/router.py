from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_admin
from feeledger.auth.schemas import CurrentAdmin
from feeledger.core.enums import SortOrder
from feeledger.core.schemas import ApiResponse
from feeledger.db.session import get_db

from . import service
from .schemas import (
    DeletedExpenditure,
    ExpenditureCreate,
    ExpenditureListData,
    ExpenditureReportData,
    ExpenditureResponse,
    ExpenditureUpdate,
    FinancialSummaryData,
    MonthlyReportData,
)

router = APIRouter(
    prefix="/api/v1/expenditures",
    tags=["expenditures"],
    dependencies=[Depends(get_current_admin)],
)


@router.post("/add", response_model=ApiResponse[ExpenditureResponse], status_code=status.HTTP_201_CREATED)
async def add_expenditure(
    payload: ExpenditureCreate,
    db: AsyncSession = Depends(get_db),
    current_admin: CurrentAdmin = Depends(get_current_admin),
) -> ApiResponse[ExpenditureResponse]:
    data = await service.create_expenditure(db, current_admin.id, payload)
    return ApiResponse(message="Expenditure added successfully", data=data)


@router.get("/summary", response_model=ApiResponse[FinancialSummaryData])
async def financial_summary(db: AsyncSession = Depends(get_db)) -> ApiResponse[FinancialSummaryData]:
    return ApiResponse(data=await service.financial_summary(db))


@router.get("/report/monthly", response_model=ApiResponse[MonthlyReportData])
async def monthly_report(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[MonthlyReportData]:
    return ApiResponse(data=await service.monthly_report(db, year))


@router.get("/report", response_model=ApiResponse[ExpenditureReportData])
async def expenditure_report(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = None,
    from_date: Optional[date] = Query(None, alias="fromDate"),
    to_date: Optional[date] = Query(None, alias="toDate"),
    category: Optional[str] = None,
    min_amount: Optional[Decimal] = Query(None, alias="minAmount"),
    max_amount: Optional[Decimal] = Query(None, alias="maxAmount"),
    sort_by: str = Query("date", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.desc, alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ExpenditureReportData]:
    data = await service.expenditure_report(
        db,
        year=year,
        month=month,
        from_date=from_date,
        to_date=to_date,
        category=category,
        min_amount=min_amount,
        max_amount=max_amount,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=data)


@router.get("", response_model=ApiResponse[ExpenditureListData])
async def list_expenditures(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    category: Optional[str] = None,
    department: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ExpenditureListData]:
    data = await service.list_expenditures(
        db,
        page=page,
        limit=limit,
        category=category,
        department=department,
        start_date=start_date,
        end_date=end_date,
    )
    return ApiResponse(data=data)


@router.get("/{expenditure_id}", response_model=ApiResponse[ExpenditureResponse])
async def get_expenditure(
    expenditure_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ExpenditureResponse]:
    return ApiResponse(data=await service.get_expenditure(db, expenditure_id))


@router.put("/{expenditure_id}", response_model=ApiResponse[ExpenditureResponse])
async def update_expenditure(
    expenditure_id: UUID,
    payload: ExpenditureUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ExpenditureResponse]:
    data = await service.update_expenditure(db, expenditure_id, payload)
    return ApiResponse(message="Expenditure updated successfully", data=data)


@router.delete("/{expenditure_id}", response_model=ApiResponse[DeletedExpenditure])
async def delete_expenditure(
    expenditure_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[DeletedExpenditure]:
    data = await service.delete_expenditure(db, expenditure_id)
    return ApiResponse(message="Expenditure deleted successfully", data=data)
