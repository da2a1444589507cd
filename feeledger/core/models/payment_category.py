"""Payment category: named fee/fine template used to generate ledger entries."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Numeric, String, Uuid

from feeledger.core.enums import PaymentType
from feeledger.db.session import Base


class PaymentCategory(Base):
    __tablename__ = "payment_categories"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    type = Column(String(10), nullable=False, default=PaymentType.fine.value)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    # Class identifiers ("SE", "TE", ...) this category applies to
    applicable_classes = Column(JSON, nullable=False, default=list)
    is_auto_assign = Column(Boolean, nullable=False, default=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
