import smtplib
from decimal import Decimal

import pytest
from httpx import AsyncClient

from feeledger.api.v1.students.importer import extract_student_fields, get_value, parse_rows, parse_upload
from feeledger.core import notifier
from feeledger.core.config import settings
from feeledger.core.exceptions import ValidationError

from conftest import add_payment, add_student


ROSTER_CSV = (
    "Student Guardian List,,,,,\n"
    "PRN No.,Student  Name,Year,Division,Roll No,Email ID\n"
    "te101,Asha Patil,TE,A,1,ASHA@College.edu\n"
    "TE102,,TE,A,2,\n"
    ",,,,,\n"
    "TE103,Ravi Kumar,TE,B,3,\n"
)


def test_parse_rows_skips_title_line_and_blank_rows() -> None:
    rows = parse_rows("\ufeff" + ROSTER_CSV)
    assert len(rows) == 3
    assert rows[0]["prn no"] == "te101"
    assert rows[0]["student name"] == "Asha Patil"


def test_extract_student_fields_normalizes_keys() -> None:
    fields = extract_student_fields(parse_rows(ROSTER_CSV)[0])
    assert fields["prn"] == "TE101"
    assert fields["name"] == "Asha Patil"
    assert fields["email"] == "asha@college.edu"
    assert fields["roll_no"] == "1"
    # No department column: the division stands in
    assert fields["department"] == "A"


def test_get_value_prefix_match_needs_three_characters() -> None:
    row = {"mobile no": "98765", "ph": "111"}
    assert get_value(row, "mobile number", "mobile") == "98765"
    assert get_value(row, "phone") is None


def test_parse_upload_rejects_unknown_and_empty_files() -> None:
    with pytest.raises(ValidationError):
        parse_upload("roster.pdf", b"data")
    with pytest.raises(ValidationError):
        parse_upload("roster.csv", b"")
    with pytest.raises(ValidationError):
        parse_upload("roster.xlsx", b"not a workbook")


@pytest.mark.asyncio
async def test_add_student_and_duplicate_prn(client: AsyncClient, auth_headers) -> None:
    data = await add_student(client, auth_headers, " te123 ", name="Asha", email="ASHA@College.edu", year="TE")
    assert data["prn"] == "TE123"
    assert data["email"] == "asha@college.edu"
    assert data["isActive"] is True

    resp = await client.post("/api/v1/students/add", json={"prn": "TE123", "name": "Other"}, headers=auth_headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "Student with PRN TE123 already exists"

    resp = await client.get("/api/v1/students/te123", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Asha"

    resp = await client.get("/api/v1/students/NOPE", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_keeps_prn(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE123", division="A")
    resp = await client.put(
        "/api/v1/students/update/TE123",
        json={"name": "Renamed", "division": "B", "prn": "XX999"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["prn"] == "TE123"
    assert data["name"] == "Renamed"
    assert data["division"] == "B"


@pytest.mark.asyncio
async def test_add_payment_records_receipt_and_totals(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE123", year="TE")

    first = await add_payment(client, auth_headers, "TE123", "500", type="fee", category="Exam")
    assert first["receiptNumber"].startswith("RCP-")
    assert first["payment"]["receiptNumber"] == first["receiptNumber"]
    assert first["emailSent"] is False

    second = await add_payment(client, auth_headers, "te123", 200, reason="Late submission")
    assert second["paymentCount"] == 2
    assert Decimal(second["totalFines"]) == Decimal("700")
    assert second["payment"]["type"] == "fine"
    assert second["payment"]["category"] == "Others"

    resp = await client.post("/api/v1/students/add-fine/TE123", json={"amount": "abc"}, headers=auth_headers)
    assert resp.status_code == 400

    resp = await client.post("/api/v1/students/add-fine/NOPE", json={"amount": "10"}, headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_add_payment_rejects_amounts_a_money_column_cannot_hold(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE123")

    for amount in ["0.001", "10000000000"]:
        resp = await client.post("/api/v1/students/add-fine/TE123", json={"amount": amount}, headers=auth_headers)
        assert resp.status_code == 400, amount
        assert resp.json()["success"] is False

    student = (await client.get("/api/v1/students/TE123", headers=auth_headers)).json()["data"]
    assert student["fines"] == []


@pytest.mark.asyncio
async def test_failed_receipt_still_records_payment(client: AsyncClient, auth_headers, monkeypatch) -> None:
    attempts = []

    def failing_send(to_address, subject, body):
        attempts.append(to_address)
        raise smtplib.SMTPException("connection refused")

    monkeypatch.setattr(settings, "email_password", "app-password")
    monkeypatch.setattr(notifier, "_send", failing_send)
    await add_student(client, auth_headers, "TE123", email="asha@college.edu")

    resp = await client.post(
        "/api/v1/students/add-fine/TE123",
        json={"amount": "250", "reason": "Late submission", "sendEmail": True},
        headers=auth_headers,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["data"]["emailSent"] is True
    assert attempts == ["asha@college.edu"]

    student = (await client.get("/api/v1/students/TE123", headers=auth_headers)).json()["data"]
    assert [Decimal(p["amount"]) for p in student["fines"]] == [Decimal("250")]


@pytest.mark.asyncio
async def test_mark_paid_only_once(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE123")
    data = await add_payment(client, auth_headers, "TE123", "150", isPaid=False)
    payment_id = data["payment"]["id"]

    history = (await client.get("/api/v1/students/TE123/fines", headers=auth_headers)).json()["data"]
    assert Decimal(history["summary"]["unpaidFines"]) == Decimal("150")

    resp = await client.put(f"/api/v1/students/TE123/fines/{payment_id}/pay", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["isPaid"] is True
    assert resp.json()["data"]["paidDate"] is not None

    resp = await client.put(f"/api/v1/students/TE123/fines/{payment_id}/pay", headers=auth_headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_csv_import_inserts_updates_and_reports_errors(client: AsyncClient, auth_headers) -> None:
    files = {"file": ("roster.csv", ROSTER_CSV.encode("utf-8"), "text/csv")}
    resp = await client.post("/api/v1/students/upload-csv", files=files, headers=auth_headers)
    assert resp.status_code == 200, resp.text
    result = resp.json()["data"]
    assert result["totalRecords"] == 3
    assert result["newStudents"] == 2
    assert result["updatedStudents"] == 0
    assert result["errors"] == 1
    assert result["errorDetails"][0]["prn"] == "TE102"

    await add_payment(client, auth_headers, "TE101", "100")

    updated_csv = "PRN,Name,Year,Division\nTE101,Asha P.,TE,A\n"
    files = {"file": ("roster.csv", updated_csv.encode("utf-8"), "text/csv")}
    resp = await client.post("/api/v1/students/upload-csv", files=files, headers=auth_headers)
    result = resp.json()["data"]
    assert result["updatedStudents"] == 1

    student = (await client.get("/api/v1/students/TE101", headers=auth_headers)).json()["data"]
    assert student["name"] == "Asha P."
    assert student["email"] == "asha@college.edu"
    assert len(student["fines"]) == 1


@pytest.mark.asyncio
async def test_management_listing_totals_and_filters(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE101", name="Asha", year="TE", division="A")
    await add_student(client, auth_headers, "TE102", name="Ravi", year="TE", division="B")
    await add_student(client, auth_headers, "SE201", name="Meera", year="SE", division="A")
    await add_payment(client, auth_headers, "TE101", "800", type="fee")
    await add_payment(client, auth_headers, "TE101", "200")
    await add_payment(client, auth_headers, "SE201", "50")

    resp = await client.get(
        "/api/v1/students/management",
        params={"sortBy": "total_paid", "sortOrder": "desc"},
        headers=auth_headers,
    )
    data = resp.json()["data"]
    first = data["students"][0]
    assert first["prn"] == "TE101"
    assert Decimal(first["feesPaid"]) == Decimal("800")
    assert Decimal(first["finePaid"]) == Decimal("200")
    assert Decimal(first["totalPaid"]) == Decimal("1000")
    assert data["filterOptions"]["years"] == ["SE", "TE"]

    resp = await client.get("/api/v1/students/management", params={"paymentType": "fee"}, headers=auth_headers)
    assert [s["prn"] for s in resp.json()["data"]["students"]] == ["TE101"]


@pytest.mark.asyncio
async def test_search_and_list(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE101", name="Asha Patil")
    await add_student(client, auth_headers, "TE102", name="Ravi Kumar")
    await add_payment(client, auth_headers, "TE102", "10")

    resp = await client.get("/api/v1/students/search", params={"query": "pat"}, headers=auth_headers)
    assert [s["prn"] for s in resp.json()["data"]] == ["TE101"]

    resp = await client.get("/api/v1/students/search", headers=auth_headers)
    assert resp.status_code == 400

    resp = await client.get("/api/v1/students", params={"hasFines": "true"}, headers=auth_headers)
    data = resp.json()["data"]
    assert [s["prn"] for s in data["students"]] == ["TE102"]
    assert data["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_bulk_deletes(client: AsyncClient, auth_headers) -> None:
    await add_student(client, auth_headers, "TE101", year="TE", division="A")
    await add_student(client, auth_headers, "TE102", year="TE", division="B")
    await add_student(client, auth_headers, "SE201", year="SE", division="A")

    resp = await client.request(
        "DELETE", "/api/v1/students/class", json={"year": "te", "division": "b"}, headers=auth_headers
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["deletedCount"] == 1

    resp = await client.delete("/api/v1/students/division/A", headers=auth_headers)
    assert resp.json()["data"]["deletedCount"] == 2

    resp = await client.delete("/api/v1/students/year/TE", headers=auth_headers)
    assert resp.status_code == 404
