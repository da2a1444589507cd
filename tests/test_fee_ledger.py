import smtplib
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from feeledger.api.v1.fee_ledger.service import compute_status
from feeledger.core import notifier
from feeledger.core.config import settings
from feeledger.core.enums import LedgerStatus
from feeledger.core.models import LedgerEntry
from feeledger.scripts.recompute_ledger import find_drifted_entries

from conftest import add_payment, add_student


def test_compute_status_thresholds() -> None:
    assert compute_status(Decimal("0"), Decimal("1000")) == LedgerStatus.unpaid
    assert compute_status(Decimal("1"), Decimal("1000")) == LedgerStatus.partial
    assert compute_status(Decimal("999.99"), Decimal("1000")) == LedgerStatus.partial
    assert compute_status(Decimal("1000"), Decimal("1000")) == LedgerStatus.paid
    assert compute_status(Decimal("1200"), Decimal("1000")) == LedgerStatus.paid


def test_compute_status_never_regresses_as_payments_grow() -> None:
    order = [LedgerStatus.unpaid, LedgerStatus.partial, LedgerStatus.paid]
    paid = Decimal("0")
    last = 0
    for amount in ["0", "100", "250", "0.01", "649.99", "500"]:
        paid += Decimal(amount)
        rank = order.index(compute_status(paid, Decimal("1000")))
        assert rank >= last
        last = rank
    assert order[last] == LedgerStatus.paid


async def _category(client: AsyncClient, headers, name="Exam Fee", amount="1000", classes=("TE",)) -> dict:
    resp = await client.post(
        "/api/v1/payment-categories",
        json={"name": name, "type": "fee", "amount": amount, "applicableClasses": list(classes)},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _generate(client: AsyncClient, headers, category_id: str, **extra):
    return await client.post(
        "/api/v1/fee-ledger/generate",
        json={"categoryId": category_id, "academicYear": "2024-25", **extra},
        headers=headers,
    )


async def _entries(client: AsyncClient, headers, **params) -> dict:
    resp = await client.get("/api/v1/fee-ledger", params=params, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_generate_is_idempotent(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE", division="A")
    await add_student(client, auth_headers, "TE002", year="te", division="B")
    await add_student(client, auth_headers, "SE001", year="SE", division="A")
    category = await _category(client, auth_headers)

    resp = await _generate(client, auth_headers, category["id"])
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["created"] == 2
    assert data["skipped"] == 0
    assert data["classes"] == ["TE"]

    resp = await _generate(client, auth_headers, category["id"])
    data = resp.json()["data"]
    assert data["created"] == 0
    assert data["skipped"] == 2

    listing = await _entries(client, auth_headers)
    assert listing["pagination"]["total"] == 2
    assert Decimal(listing["summary"]["totalExpected"]) == Decimal("2000")
    assert listing["summary"]["unpaid"] == 2
    assert {e["status"] for e in listing["entries"]} == {"unpaid"}


@pytest.mark.asyncio
async def test_generate_errors(client: AsyncClient, auth_headers) -> None:
    category = await _category(client, auth_headers, classes=())
    resp = await _generate(client, auth_headers, category["id"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "No classes specified for ledger generation"

    resp = await _generate(client, auth_headers, category["id"], classes=["BE"])
    assert resp.status_code == 404
    assert resp.json()["message"] == "No students found in specified classes"

    await add_student(client, auth_headers, "BE001", year="BE")
    resp = await _generate(client, auth_headers, category["id"], classes=["BE"], amount="-10")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_payments_move_status_forward(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE")
    category = await _category(client, auth_headers)
    await _generate(client, auth_headers, category["id"])
    entry_id = (await _entries(client, auth_headers))["entries"][0]["id"]

    resp = await client.post(
        f"/api/v1/fee-ledger/{entry_id}/pay",
        json={"amount": "400", "paymentMode": "upi", "sendEmail": False},
        headers=auth_headers,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["entry"]["status"] == "partial"
    assert Decimal(data["entry"]["pendingAmount"]) == Decimal("600")
    assert data["receiptNumber"].startswith("RCP-")

    # Overpayment is kept and the entry is paid
    resp = await client.post(
        f"/api/v1/fee-ledger/{entry_id}/pay",
        json={"amount": "700", "sendEmail": False},
        headers=auth_headers,
    )
    entry = resp.json()["data"]["entry"]
    assert entry["status"] == "paid"
    assert Decimal(entry["paidAmount"]) == Decimal("1100")
    assert Decimal(entry["pendingAmount"]) == Decimal("0")
    assert len(entry["payments"]) == 2

    # Ledger payments also count as student income
    resp = await client.get("/api/v1/students/TE001", headers=auth_headers)
    student = resp.json()["data"]
    assert Decimal(student["totalFines"]) == Decimal("1100")
    assert {p["type"] for p in student["fines"]} == {"fee"}

    resp = await client.post(f"/api/v1/fee-ledger/{entry_id}/pay", json={"amount": 0}, headers=auth_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_sub_cent_payment_leaves_entry_untouched(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE")
    category = await _category(client, auth_headers, amount="100")
    await _generate(client, auth_headers, category["id"])
    entry_id = (await _entries(client, auth_headers))["entries"][0]["id"]

    for amount in ["0.001", "99.999", "10000000000"]:
        resp = await client.post(
            f"/api/v1/fee-ledger/{entry_id}/pay",
            json={"amount": amount, "sendEmail": False},
            headers=auth_headers,
        )
        assert resp.status_code == 400, amount

    entry = (await client.get(f"/api/v1/fee-ledger/{entry_id}", headers=auth_headers)).json()["data"]
    assert entry["status"] == "unpaid"
    assert Decimal(entry["paidAmount"]) == Decimal("0")
    assert entry["payments"] == []

    resp = await client.delete(f"/api/v1/fee-ledger/{entry_id}", headers=auth_headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_ledger_payment_survives_receipt_failure(client: AsyncClient, auth_headers, monkeypatch) -> None:
    def failing_send(to_address, subject, body):
        raise smtplib.SMTPException("mailbox unavailable")

    monkeypatch.setattr(settings, "email_password", "app-password")
    monkeypatch.setattr(notifier, "_send", failing_send)
    await add_student(client, auth_headers, "TE001", year="TE", email="ravi@college.edu")
    category = await _category(client, auth_headers)
    await _generate(client, auth_headers, category["id"])
    entry_id = (await _entries(client, auth_headers))["entries"][0]["id"]

    resp = await client.post(
        f"/api/v1/fee-ledger/{entry_id}/pay",
        json={"amount": "1000", "sendEmail": True},
        headers=auth_headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["emailSent"] is True

    entry = (await client.get(f"/api/v1/fee-ledger/{entry_id}", headers=auth_headers)).json()["data"]
    assert entry["status"] == "paid"
    assert len(entry["payments"]) == 1

@pytest.mark.asyncio
async def test_student_payment_syncs_into_matching_entry(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE")
    category = await _category(client, auth_headers)
    await _generate(client, auth_headers, category["id"])

    data = await add_payment(client, auth_headers, "TE001", "1000", type="fee", category="exam fee")
    assert data["ledgerSynced"] is True

    resp = await client.get("/api/v1/fee-ledger/student/te001", headers=auth_headers)
    ledgers = resp.json()["data"]
    assert ledgers["entries"][0]["status"] == "paid"
    assert ledgers["summary"]["fullyPaid"] == 1

    data = await add_payment(client, auth_headers, "TE001", "50", category="Library")
    assert data["ledgerSynced"] is False


@pytest.mark.asyncio
async def test_entry_with_payments_cannot_be_deleted(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE")
    await add_student(client, auth_headers, "TE002", year="TE")
    category = await _category(client, auth_headers)
    await _generate(client, auth_headers, category["id"])
    entries = (await _entries(client, auth_headers, sortBy="student_prn"))["entries"]
    paid_id, unpaid_id = entries[0]["id"], entries[1]["id"]

    await client.post(f"/api/v1/fee-ledger/{paid_id}/pay", json={"amount": "10", "sendEmail": False}, headers=auth_headers)

    resp = await client.delete(f"/api/v1/fee-ledger/{paid_id}", headers=auth_headers)
    assert resp.status_code == 409

    resp = await client.delete(f"/api/v1/fee-ledger/{unpaid_id}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    resp = await client.get(f"/api/v1/fee-ledger/{unpaid_id}", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_bulk_delete_skips_entries_with_payments(client: AsyncClient, auth_headers) -> None:
    for prn in ("TE001", "TE002", "TE003"):
        await add_student(client, auth_headers, prn, year="TE")
    category = await _category(client, auth_headers)
    await _generate(client, auth_headers, category["id"])
    entries = (await _entries(client, auth_headers, sortBy="student_prn"))["entries"]
    await client.post(
        f"/api/v1/fee-ledger/{entries[0]['id']}/pay", json={"amount": "10", "sendEmail": False}, headers=auth_headers
    )

    resp = await client.get("/api/v1/fee-ledger/deletable-options", headers=auth_headers)
    assert resp.json()["data"]["classes"] == ["TE"]

    resp = await client.request(
        "DELETE", "/api/v1/fee-ledger/bulk-delete", json={"studentClass": "te"}, headers=auth_headers
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["deletedCount"] == 2
    assert data["skippedCount"] == 1

    resp = await client.request(
        "DELETE", "/api/v1/fee-ledger/bulk-delete", json={"studentClass": "TE"}, headers=auth_headers
    )
    assert resp.status_code == 409

    resp = await client.request(
        "DELETE", "/api/v1/fee-ledger/bulk-delete", json={"studentClass": "BE"}, headers=auth_headers
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_class_summary_and_pending_filter(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE")
    await add_student(client, auth_headers, "SE001", year="SE")
    category = await _category(client, auth_headers, amount="500", classes=("TE", "SE"))
    await _generate(client, auth_headers, category["id"])

    entries = (await _entries(client, auth_headers, studentClass="SE"))["entries"]
    await client.post(
        f"/api/v1/fee-ledger/{entries[0]['id']}/pay", json={"amount": "500", "sendEmail": False}, headers=auth_headers
    )

    pending = await _entries(client, auth_headers, pendingOnly="true")
    assert [e["studentPrn"] for e in pending["entries"]] == ["TE001"]

    resp = await client.get("/api/v1/fee-ledger/class-summary", headers=auth_headers)
    summary = resp.json()["data"]
    by_class = {item["studentClass"]: item for item in summary["classSummary"]}
    assert by_class["SE"]["fullyPaid"] == 1
    assert by_class["TE"]["unpaid"] == 1
    assert Decimal(summary["overall"]["totalCollected"]) == Decimal("500")
    assert Decimal(summary["overall"]["totalPending"]) == Decimal("500")


@pytest.mark.asyncio
async def test_recompute_script_repairs_drifted_status(client: AsyncClient, db_session, auth_headers) -> None:
    await add_student(client, auth_headers, "TE001", year="TE")
    await add_student(client, auth_headers, "TE002", year="TE")
    category = await _category(client, auth_headers)
    await _generate(client, auth_headers, category["id"])

    entries = (await db_session.execute(select(LedgerEntry).order_by(LedgerEntry.student_prn))).scalars().all()
    entries[0].status = LedgerStatus.paid.value
    entries[0].paid_amount = Decimal("1000")
    await db_session.commit()

    drifted = await find_drifted_entries(db_session)
    assert [entry.student_prn for entry, _, _ in drifted] == ["TE001"]
    assert entries[0].status == LedgerStatus.unpaid.value
    assert entries[0].paid_amount == Decimal("0")

    await db_session.commit()
    assert await find_drifted_entries(db_session) == []
