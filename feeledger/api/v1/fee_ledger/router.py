from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_admin
from feeledger.core.enums import LedgerStatus, SortOrder
from feeledger.core.schemas import ApiResponse, MessageResponse
from feeledger.db.session import get_db

from . import service
from .schemas import (
    BulkDeleteData,
    BulkDeleteRequest,
    ClassSummaryData,
    DeletableOptions,
    GenerateLedgerData,
    GenerateLedgerRequest,
    LedgerEntryResponse,
    LedgerListData,
    LedgerPayData,
    LedgerPayRequest,
    StudentLedgerData,
)

router = APIRouter(
    prefix="/api/v1/fee-ledger",
    tags=["fee-ledger"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=ApiResponse[LedgerListData])
async def list_entries(
    student_class: Optional[str] = Query(None, alias="studentClass"),
    division: Optional[str] = None,
    category: Optional[UUID] = Query(None, description="Payment category id"),
    status_filter: Optional[LedgerStatus] = Query(None, alias="status"),
    pending_only: bool = Query(False, alias="pendingOnly"),
    search: Optional[str] = None,
    sort_by: str = Query("student_name", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.asc, alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(service.LEDGER_PAGE_LIMIT, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[LedgerListData]:
    data = await service.list_entries(
        db,
        student_class=student_class,
        division=division,
        category_id=category,
        status=status_filter,
        pending_only=pending_only,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=data)


@router.get("/class-summary", response_model=ApiResponse[ClassSummaryData])
async def class_summary(
    category: Optional[UUID] = None,
    academic_year: Optional[str] = Query(None, alias="academicYear"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ClassSummaryData]:
    return ApiResponse(data=await service.class_summary(db, category_id=category, academic_year=academic_year))


@router.get("/deletable-options", response_model=ApiResponse[DeletableOptions])
async def deletable_options(db: AsyncSession = Depends(get_db)) -> ApiResponse[DeletableOptions]:
    return ApiResponse(data=await service.deletable_options(db))


@router.get("/student/{prn}", response_model=ApiResponse[StudentLedgerData])
async def student_ledgers(prn: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[StudentLedgerData]:
    return ApiResponse(data=await service.student_ledgers(db, prn))


@router.post("/generate", response_model=ApiResponse[GenerateLedgerData], status_code=status.HTTP_201_CREATED)
async def generate_entries(
    payload: GenerateLedgerRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[GenerateLedgerData]:
    data = await service.generate_entries(db, payload)
    return ApiResponse(message=f"Generated {data.created} ledger entries", data=data)


@router.delete("/bulk-delete", response_model=ApiResponse[BulkDeleteData])
async def bulk_delete(
    payload: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[BulkDeleteData]:
    data = await service.bulk_delete(db, payload)
    return ApiResponse(
        message=f"Deleted {data.deleted_count} ledger entries for {payload.student_class}",
        data=data,
    )


@router.get("/{entry_id}", response_model=ApiResponse[LedgerEntryResponse])
async def get_entry(entry_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[LedgerEntryResponse]:
    return ApiResponse(data=await service.get_entry(db, entry_id))


@router.post("/{entry_id}/pay", response_model=ApiResponse[LedgerPayData])
async def pay_entry(
    entry_id: UUID,
    payload: LedgerPayRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[LedgerPayData]:
    data = await service.pay_entry(db, entry_id, payload, background_tasks)
    return ApiResponse(message="Payment recorded successfully", data=data)


@router.delete("/{entry_id}", response_model=MessageResponse)
async def delete_entry(entry_id: UUID, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await service.delete_entry(db, entry_id)
    return MessageResponse(message="Ledger entry deleted successfully")
