"""
Outbound e-mail: payment receipts and password-reset OTPs over SMTP.

Receipts are fire-and-forget. `dispatch_receipt` queues the send on the request's
BackgroundTasks, it runs after the response is written, and any failure only ends up in
the log. A payment is recorded whether or not its receipt is ever delivered.
OTP mail is different: the reset flow needs to know, so `send_otp` raises.
"""

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from email.message import EmailMessage
from typing import Optional

from fastapi import BackgroundTasks

from feeledger.core.config import settings
from feeledger.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 15


@dataclass
class ReceiptFacts:
    receipt_number: str
    amount: Decimal
    payment_type: str
    category: str
    reason: Optional[str]
    date: datetime
    student_name: str
    student_prn: str


@dataclass
class DeliveryOutcome:
    delivered: bool
    reason: Optional[str] = None


def _send(to_address: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["From"] = f"{settings.email_sender_name} <{settings.admin_email}>"
    msg["To"] = to_address
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
        smtp.login(settings.admin_email, settings.email_password)
        smtp.send_message(msg)


def _format_amount(amount: Decimal) -> str:
    return f"Rs. {amount:,.2f}"


def _receipt_body(facts: ReceiptFacts) -> str:
    label = "Fee" if facts.payment_type == "fee" else "Fine"
    lines = [
        f"Dear {facts.student_name},",
        "",
        "We have received the following payment.",
        "",
        f"Receipt number : {facts.receipt_number}",
        f"PRN            : {facts.student_prn}",
        f"Type           : {label}",
        f"Category       : {facts.category}",
        f"Amount         : {_format_amount(facts.amount)}",
        f"Date           : {facts.date:%d %b %Y %I:%M %p}",
    ]
    if facts.reason:
        lines.append(f"Description    : {facts.reason}")
    lines += ["", "This is a system generated receipt."]
    return "\n".join(lines)


def send_receipt(recipient: Optional[str], facts: ReceiptFacts) -> DeliveryOutcome:
    if not settings.email_configured:
        logger.info("Email not configured, skipping receipt %s", facts.receipt_number)
        return DeliveryOutcome(False, "Email not configured")
    if not recipient:
        logger.info("Student %s has no email, skipping receipt %s", facts.student_prn, facts.receipt_number)
        return DeliveryOutcome(False, "Student email not found")

    subject = f"Payment Receipt - {facts.receipt_number} | {_format_amount(facts.amount)}"
    try:
        _send(recipient, subject, _receipt_body(facts))
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Failed to send receipt %s to %s: %s", facts.receipt_number, recipient, e)
        return DeliveryOutcome(False, str(e))
    logger.info("Payment receipt %s sent to %s", facts.receipt_number, recipient)
    return DeliveryOutcome(True)


def _deliver_receipt(recipient: Optional[str], facts: ReceiptFacts) -> None:
    try:
        send_receipt(recipient, facts)
    except Exception:
        # Runs after the response; nobody is left to report to.
        logger.exception("Receipt notification for %s crashed", facts.receipt_number)


def dispatch_receipt(background_tasks: BackgroundTasks, recipient: Optional[str], facts: ReceiptFacts) -> bool:
    """Queue a receipt without waiting for it. Returns whether a recipient address exists."""
    background_tasks.add_task(_deliver_receipt, recipient, facts)
    return bool(recipient)


def send_otp(email: str, otp: str) -> None:
    if not settings.email_configured:
        raise ExternalServiceError("Email configuration not found")
    body = "\n".join(
        [
            "You have requested to reset your password.",
            "",
            f"Your OTP code: {otp}",
            "",
            f"This OTP is valid for {settings.otp_expire_minutes} minutes.",
            "If you didn't request this, please ignore this email.",
        ]
    )
    try:
        _send(email, "Password Reset OTP", body)
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Failed to send OTP email: %s", e)
        raise ExternalServiceError("Failed to send OTP email. Please try again.") from e
    logger.info("Password reset OTP sent")
