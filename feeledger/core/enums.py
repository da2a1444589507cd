from enum import Enum


class PaymentType(str, Enum):
    fee = "fee"
    fine = "fine"


class PaymentMode(str, Enum):
    cash = "cash"
    upi = "upi"
    card = "card"
    bank = "bank"
    other = "other"


class LedgerStatus(str, Enum):
    unpaid = "unpaid"
    partial = "partial"
    paid = "paid"


class TransactionType(str, Enum):
    income = "income"
    expenditure = "expenditure"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"
