"""Payment category catalog. Names are unique case-insensitively; deleting only deactivates."""

from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.aggregation import clean_text, validate_amount
from feeledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from feeledger.core.models import PaymentCategory

from .schemas import PaymentCategoryCreate, PaymentCategoryResponse, PaymentCategoryUpdate


def _clean_classes(classes: Optional[List[str]]) -> List[str]:
    seen: List[str] = []
    for c in classes or []:
        c = (c or "").strip().upper()
        if c and c not in seen:
            seen.append(c)
    return seen


def _category_amount(raw: Any) -> Decimal:
    # No default amount means ledger generation must be given one explicitly
    if raw is None:
        return Decimal("0")
    return validate_amount(raw, "Category amount")


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: Optional[UUID] = None) -> None:
    stmt = select(PaymentCategory.id).where(func.lower(PaymentCategory.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(PaymentCategory.id != exclude_id)
    if (await db.execute(stmt)).first():
        raise ConflictError(f"Payment category '{name}' already exists")


async def _get(db: AsyncSession, category_id: UUID) -> PaymentCategory:
    category = await db.get(PaymentCategory, category_id)
    if not category:
        raise NotFoundError("Payment category not found")
    return category


async def create_category(db: AsyncSession, payload: PaymentCategoryCreate) -> PaymentCategoryResponse:
    name = clean_text(payload.name)
    if not name:
        raise ValidationError("Category name is required")
    await _ensure_unique_name(db, name)
    category = PaymentCategory(
        name=name,
        type=payload.type.value,
        amount=_category_amount(payload.amount),
        applicable_classes=_clean_classes(payload.applicable_classes),
        is_auto_assign=payload.is_auto_assign,
        description=clean_text(payload.description),
    )
    db.add(category)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(f"Payment category '{name}' already exists") from e
    await db.refresh(category)
    return PaymentCategoryResponse.model_validate(category)


async def list_categories(db: AsyncSession, include_inactive: bool = False) -> List[PaymentCategoryResponse]:
    stmt = select(PaymentCategory).order_by(PaymentCategory.name)
    if not include_inactive:
        stmt = stmt.where(PaymentCategory.is_active.is_(True))
    return [PaymentCategoryResponse.model_validate(c) for c in (await db.execute(stmt)).scalars().all()]


async def get_category(db: AsyncSession, category_id: UUID) -> PaymentCategoryResponse:
    return PaymentCategoryResponse.model_validate(await _get(db, category_id))


async def update_category(
    db: AsyncSession, category_id: UUID, payload: PaymentCategoryUpdate
) -> PaymentCategoryResponse:
    category = await _get(db, category_id)
    data = payload.model_dump(exclude_unset=True)

    if data.get("name") is not None:
        name = clean_text(data["name"])
        if not name:
            raise ValidationError("Category name is required")
        await _ensure_unique_name(db, name, exclude_id=category.id)
        category.name = name
    if data.get("type") is not None:
        category.type = data["type"].value
    if "amount" in data:
        category.amount = _category_amount(data["amount"])
    if data.get("applicable_classes") is not None:
        category.applicable_classes = _clean_classes(data["applicable_classes"])
    if data.get("is_auto_assign") is not None:
        category.is_auto_assign = data["is_auto_assign"]
    if "description" in data:
        category.description = clean_text(data["description"])
    if data.get("is_active") is not None:
        category.is_active = data["is_active"]

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Payment category name already exists") from e
    await db.refresh(category)
    return PaymentCategoryResponse.model_validate(category)


async def deactivate_category(db: AsyncSession, category_id: UUID) -> None:
    category = await _get(db, category_id)
    category.is_active = False
    await db.commit()
