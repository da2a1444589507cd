"""Payment record (fee or fine) embedded in a student."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import PaymentMode, PaymentType
from feeledger.db.session import Base


class PaymentRecord(Base):
    """A fee or fine paid by a student. Only reachable through its owning Student."""

    __tablename__ = "student_payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(String(10), nullable=False, default=PaymentType.fine.value)  # fee, fine
    # Free text; not tied to payment_categories
    category = Column(String(100), nullable=False, default="Others")
    reason = Column(Text, nullable=True)
    receipt_number = Column(String(50), nullable=True, index=True)
    payment_mode = Column(String(20), nullable=False, default=PaymentMode.cash.value)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_paid = Column(Boolean, nullable=False, default=True)
    paid_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    student = relationship("Student", back_populates="payments")
