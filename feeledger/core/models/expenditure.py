"""Department expenditure. Independent of students."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class Expenditure(Base):
    __tablename__ = "expenditures"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(500), nullable=False)
    category = Column(String(100), nullable=False, default="other")
    department = Column(String(100), nullable=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    receipt_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    added_by = Column(Uuid(as_uuid=True), ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    added_by_admin = relationship("Admin", foreign_keys=[added_by], lazy="joined")
