from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from pydantic import Field

from feeledger.core.enums import PaymentType
from feeledger.core.schemas import CamelModel


class PaymentCategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: PaymentType = PaymentType.fine
    amount: Any = None
    applicable_classes: List[str] = []
    is_auto_assign: bool = False
    description: Optional[str] = Field(None, max_length=500)


class PaymentCategoryUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[PaymentType] = None
    amount: Any = None
    applicable_classes: Optional[List[str]] = None
    is_auto_assign: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class PaymentCategoryResponse(CamelModel):
    id: UUID
    name: str
    type: str
    amount: Decimal
    applicable_classes: List[str]
    is_auto_assign: bool
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
