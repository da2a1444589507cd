from feeledger.core.models.student import Student
from feeledger.core.models.payment_record import PaymentRecord
from feeledger.core.models.expenditure import Expenditure
from feeledger.core.models.payment_category import PaymentCategory
from feeledger.core.models.ledger_entry import LedgerEntry, LedgerPayment

# Admin lives with the auth package; import it so every mapper is registered together.
from feeledger.auth.models import Admin

__all__ = [
    "Admin",
    "Expenditure",
    "LedgerEntry",
    "LedgerPayment",
    "PaymentCategory",
    "PaymentRecord",
    "Student",
]
