import secrets
from datetime import datetime
from typing import Optional

from feeledger.core.notifier import ReceiptFacts


def generate_receipt_number(now: Optional[datetime] = None) -> str:
    """RCP-YYYYMMDD-NNNNN with a random five digit suffix. Not checked for global uniqueness."""
    now = now or datetime.utcnow()
    return f"RCP-{now:%Y%m%d}-{10000 + secrets.randbelow(90000)}"


def receipt_facts(student, payment) -> ReceiptFacts:
    """Snapshot a stored payment record for the notifier, detached from the session."""
    return ReceiptFacts(
        receipt_number=payment.receipt_number,
        amount=payment.amount,
        payment_type=payment.type,
        category=payment.category,
        reason=payment.reason,
        date=payment.date,
        student_name=student.name,
        student_prn=student.prn,
    )
