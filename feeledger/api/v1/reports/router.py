from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_admin
from feeledger.core.enums import SortOrder
from feeledger.core.schemas import ApiResponse
from feeledger.db.session import get_db

from . import backup, service
from .schemas import StudentPaymentsData, TransactionsData

router = APIRouter(
    prefix="/api/v1/reports",
    tags=["reports"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("/student-payments", response_model=ApiResponse[StudentPaymentsData])
async def student_payments(
    payment_type: Optional[str] = Query(None, alias="type", pattern="^(fee|fine|both|all)$"),
    year: Optional[str] = None,
    division: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = Query("totalAmount", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.desc, alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[StudentPaymentsData]:
    data = await service.student_payments(
        db,
        payment_type=payment_type,
        year=year,
        division=division,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=data)


@router.get("/transactions", response_model=ApiResponse[TransactionsData])
async def transactions(
    scope: str = Query("all", alias="type", pattern="^(all|income|expenditure)$"),
    payment_type: Optional[str] = Query(None, alias="paymentType", pattern="^(fee|fine|all)$"),
    category: Optional[str] = None,
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = None,
    from_date: Optional[date] = Query(None, alias="fromDate"),
    to_date: Optional[date] = Query(None, alias="toDate"),
    min_amount: Optional[Decimal] = Query(None, alias="minAmount"),
    max_amount: Optional[Decimal] = Query(None, alias="maxAmount"),
    division: Optional[str] = None,
    student_class: Optional[str] = Query(None, alias="studentClass"),
    search: Optional[str] = None,
    sort_by: str = Query("date", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.desc, alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TransactionsData]:
    flt = service.build_transaction_filter(
        scope=scope,
        payment_type=payment_type,
        category=category,
        year=year,
        month=month,
        from_date=from_date,
        to_date=to_date,
        min_amount=min_amount,
        max_amount=max_amount,
        division=division,
        student_class=student_class,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=await service.transactions(db, flt))


@router.get("/backup")
async def download_backup(db: AsyncSession = Depends(get_db)) -> Response:
    """Download an .xlsx backup of active students and every transaction."""
    now = datetime.utcnow()
    content = await backup.build_backup(db, now)
    return Response(
        content=content,
        media_type=backup.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={backup.backup_filename(now)}"},
    )
