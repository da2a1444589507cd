import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Text, Uuid

from feeledger.db.session import Base


class Admin(Base):
    """
    Administrator account. The deployment runs with a single admin whose email comes
    from configuration. reset_otp / reset_otp_expiry / otp_verified hold the password
    reset flow and are cleared together when it completes.
    """

    __tablename__ = "admins"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    name = Column(String(255), nullable=False, default="System Admin")
    last_login = Column(DateTime, nullable=True)

    reset_otp = Column(String(10), nullable=True)
    reset_otp_expiry = Column(DateTime, nullable=True)
    otp_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
