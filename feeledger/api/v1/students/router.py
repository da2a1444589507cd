"""Students router. Fixed paths are registered before the /{prn} routes so they are not shadowed."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_admin
from feeledger.core.enums import SortOrder
from feeledger.core.schemas import ApiResponse
from feeledger.db.session import get_db

from . import importer, service
from .schemas import (
    AddPaymentData,
    AddPaymentRequest,
    ClassDeleteRequest,
    DeletedCount,
    DeletedStudent,
    FineHistory,
    ImportResult,
    ManagementData,
    PaymentRecordResponse,
    StudentCreate,
    StudentDetail,
    StudentListData,
    StudentUpdate,
)

router = APIRouter(
    prefix="/api/v1/students",
    tags=["students"],
    dependencies=[Depends(get_current_admin)],
)


@router.post("/upload-csv", response_model=ApiResponse[ImportResult])
async def upload_roster(
    file: UploadFile = File(..., description="Roster as .csv or .xlsx"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ImportResult]:
    """Insert or update students by PRN. Row failures are reported in errorDetails, not raised."""
    content = await file.read()
    rows = importer.parse_upload(file.filename, content)
    result = await service.import_students(db, rows)
    return ApiResponse(message="CSV file processed successfully", data=result)


@router.post("/add", response_model=ApiResponse[StudentDetail], status_code=status.HTTP_201_CREATED)
async def add_student(
    payload: StudentCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[StudentDetail]:
    data = await service.create_student(db, payload)
    return ApiResponse(message="Student added successfully", data=data)


@router.get("", response_model=ApiResponse[StudentListData])
async def list_students(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    department: Optional[str] = None,
    has_fines: bool = Query(False, alias="hasFines"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[StudentListData]:
    data = await service.list_students(db, page=page, limit=limit, department=department, has_fines=has_fines)
    return ApiResponse(data=data)


@router.get("/management", response_model=ApiResponse[ManagementData])
async def management_list(
    year: Optional[str] = None,
    division: Optional[str] = None,
    payment_type: Optional[str] = Query(None, alias="paymentType", pattern="^(fee|fine|all)$"),
    search: Optional[str] = None,
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.asc, alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ManagementData]:
    data = await service.management_list(
        db,
        year=year,
        division=division,
        payment_type=payment_type,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ApiResponse(data=data)


@router.get("/search", response_model=ApiResponse[List[StudentDetail]])
async def search_students(
    query: Optional[str] = None,
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[StudentDetail]]:
    return ApiResponse(data=await service.search_students(db, query, limit))


@router.get("/search/{prn}", response_model=ApiResponse[StudentDetail])
async def search_by_prn(prn: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[StudentDetail]:
    return ApiResponse(data=await service.get_student(db, prn))


@router.post(
    "/add-fine/{prn}",
    response_model=ApiResponse[AddPaymentData],
    status_code=status.HTTP_201_CREATED,
)
async def add_payment(
    prn: str,
    payload: AddPaymentRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AddPaymentData]:
    data = await service.add_payment(db, prn, payload, background_tasks)
    return ApiResponse(message="Payment added successfully", data=data)


@router.put("/update/{prn}", response_model=ApiResponse[StudentDetail])
async def update_student(
    prn: str,
    payload: StudentUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[StudentDetail]:
    data = await service.update_student(db, prn, payload)
    return ApiResponse(message="Student updated successfully", data=data)


@router.delete("/division/{division}", response_model=ApiResponse[DeletedCount])
async def delete_by_division(division: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[DeletedCount]:
    data = await service.delete_by_division(db, division)
    return ApiResponse(message=f"Deleted {data.deleted_count} students from division {division}", data=data)


@router.delete("/year/{year}", response_model=ApiResponse[DeletedCount])
async def delete_by_year(year: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[DeletedCount]:
    data = await service.delete_by_year(db, year)
    return ApiResponse(message=f"Deleted {data.deleted_count} students from year {year}", data=data)


@router.delete("/class", response_model=ApiResponse[DeletedCount])
async def delete_by_class(
    payload: ClassDeleteRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[DeletedCount]:
    data = await service.delete_by_class(db, payload.year, payload.division)
    return ApiResponse(
        message=f"Deleted {data.deleted_count} students from {payload.year} division {payload.division}",
        data=data,
    )


# --- /{prn} routes ---
@router.get("/{prn}", response_model=ApiResponse[StudentDetail])
async def get_student(prn: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[StudentDetail]:
    return ApiResponse(data=await service.get_student(db, prn))


@router.get("/{prn}/fines", response_model=ApiResponse[FineHistory])
async def fine_history(prn: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[FineHistory]:
    return ApiResponse(data=await service.get_fine_history(db, prn))


@router.put("/{prn}/fines/{payment_id}/pay", response_model=ApiResponse[PaymentRecordResponse])
async def mark_paid(
    prn: str,
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PaymentRecordResponse]:
    data = await service.mark_payment_paid(db, prn, payment_id)
    return ApiResponse(message="Fine marked as paid", data=data)


@router.delete("/{prn}", response_model=ApiResponse[DeletedStudent])
async def delete_student(prn: str, db: AsyncSession = Depends(get_db)) -> ApiResponse[DeletedStudent]:
    data = await service.delete_student(db, prn)
    return ApiResponse(message="Student deleted successfully", data=data)
