"""Fee ledger: expected payment per student per category, with applied payments."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import LedgerStatus, PaymentMode
from feeledger.db.session import Base


class LedgerEntry(Base):
    """
    Obligation of one student for one payment category in one academic year.
    paid_amount and status are derived from `payments`; only the fee ledger service writes them.
    """

    __tablename__ = "fee_ledger_entries"
    __table_args__ = (
        UniqueConstraint("student_id", "category_id", "academic_year", name="uq_ledger_student_category_year"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid(as_uuid=True), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(
        Uuid(as_uuid=True), ForeignKey("payment_categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # Denormalized student/category info for filtering without joins
    student_prn = Column(String(50), nullable=False, index=True)
    student_name = Column(String(255), nullable=False)
    student_roll_no = Column(String(50), nullable=True)
    student_class = Column(String(50), nullable=True, index=True)
    student_division = Column(String(50), nullable=True)
    category_name = Column(String(100), nullable=False)

    total_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=LedgerStatus.unpaid.value)  # unpaid, partial, paid

    academic_year = Column(String(20), nullable=True)
    due_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student", lazy="selectin")
    category = relationship("PaymentCategory", lazy="selectin")
    payments = relationship(
        "LedgerPayment",
        back_populates="ledger_entry",
        cascade="all, delete-orphan",
        order_by="LedgerPayment.date",
        lazy="selectin",
    )


class LedgerPayment(Base):
    """Payment applied against a ledger entry. Never retracted."""

    __tablename__ = "fee_ledger_payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ledger_entry_id = Column(
        Uuid(as_uuid=True), ForeignKey("fee_ledger_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(12, 2), nullable=False)
    payment_mode = Column(String(20), nullable=False, default=PaymentMode.cash.value)
    receipt_number = Column(String(50), nullable=True)
    remarks = Column(Text, nullable=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    ledger_entry = relationship("LedgerEntry", back_populates="payments")
