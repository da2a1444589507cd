"""Student roster entry. Owns its payment records (fees and fines)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class Student(Base):
    """
    One student. `prn` is the business key: upper-cased on write, unique, never changed.
    Payment records live only inside `payments`; they are appended, and later touched only
    to flip `is_paid`.
    """

    __tablename__ = "students"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prn = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    department = Column(String(100), nullable=True)
    academic_year = Column(String(20), nullable=True)
    semester = Column(String(20), nullable=True)
    # Class, e.g. "TE", "SE"
    year = Column(String(50), nullable=True, index=True)
    division = Column(String(50), nullable=True, index=True)
    roll_no = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    payments = relationship(
        "PaymentRecord",
        back_populates="student",
        cascade="all, delete-orphan",
        order_by="PaymentRecord.created_at",
        lazy="selectin",
    )
