from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_current_admin
from feeledger.core.schemas import ApiResponse, MessageResponse
from feeledger.db.session import get_db

from . import service
from .schemas import PaymentCategoryCreate, PaymentCategoryResponse, PaymentCategoryUpdate

router = APIRouter(
    prefix="/api/v1/payment-categories",
    tags=["payment-categories"],
    dependencies=[Depends(get_current_admin)],
)


@router.post("", response_model=ApiResponse[PaymentCategoryResponse], status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: PaymentCategoryCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PaymentCategoryResponse]:
    data = await service.create_category(db, payload)
    return ApiResponse(message="Payment category created", data=data)


@router.get("", response_model=ApiResponse[List[PaymentCategoryResponse]])
async def list_categories(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[PaymentCategoryResponse]]:
    return ApiResponse(data=await service.list_categories(db, include_inactive=include_inactive))


@router.get("/{category_id}", response_model=ApiResponse[PaymentCategoryResponse])
async def get_category(category_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[PaymentCategoryResponse]:
    return ApiResponse(data=await service.get_category(db, category_id))


@router.put("/{category_id}", response_model=ApiResponse[PaymentCategoryResponse])
async def update_category(
    category_id: UUID,
    payload: PaymentCategoryUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PaymentCategoryResponse]:
    data = await service.update_category(db, category_id, payload)
    return ApiResponse(message="Payment category updated", data=data)


@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(category_id: UUID, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await service.deactivate_category(db, category_id)
    return MessageResponse(message="Payment category deactivated")
