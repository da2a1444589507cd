from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from feeledger.core.aggregation import (
    group_sum,
    in_amount_range,
    in_date_range,
    is_fee,
    is_fine,
    is_valid_facet,
    naive_utc,
    paginate,
    resolve_date_window,
    sort_breakdown_desc,
    sort_category_names,
    sum_by_predicate,
    validate_amount,
)
from feeledger.core.exceptions import ValidationError


PAYMENTS = [
    {"amount": Decimal("500"), "type": "fee", "category": "Exam", "date": datetime(2024, 1, 5)},
    {"amount": Decimal("300"), "type": "fee", "category": "Lab", "date": datetime(2024, 2, 9)},
    {"amount": Decimal("200"), "type": "fine", "category": "Library", "date": datetime(2024, 2, 20)},
    {"amount": "49.50", "type": "fine", "category": "Others", "date": datetime(2024, 3, 1)},
]


def test_sum_by_predicate_splits_fee_and_fine() -> None:
    fees = sum_by_predicate(PAYMENTS, is_fee)
    fines = sum_by_predicate(PAYMENTS, is_fine)
    assert fees == Decimal("800")
    assert fines == Decimal("249.50")
    assert fees + fines == sum_by_predicate(PAYMENTS)


def test_sum_of_nothing_is_zero() -> None:
    assert sum_by_predicate(None) == Decimal("0")
    assert sum_by_predicate([]) == Decimal("0")
    assert sum_by_predicate(PAYMENTS, lambda p: False) == Decimal("0")


def test_group_sum_and_breakdown_order() -> None:
    rows = [
        {"amount": 100, "category": "travel"},
        {"amount": 50, "category": "stationery"},
        {"amount": 400, "category": "equipment"},
        {"amount": 25, "category": "travel"},
    ]
    groups = group_sum(rows, lambda r: r["category"])
    assert groups["travel"].amount == Decimal("125")
    assert groups["travel"].count == 2

    ordered = [name for name, _ in sort_breakdown_desc(groups)]
    assert ordered == ["equipment", "travel", "stationery"]


def test_category_names_sorted_with_others_last() -> None:
    names = ["Others", "Lab", "Exam", None, "", "Lab", "Bus"]
    assert sort_category_names(names) == ["Bus", "Exam", "Lab", "Others"]


def test_date_range_is_inclusive() -> None:
    start, end = datetime(2024, 2, 1), datetime(2024, 2, 20)
    pred = in_date_range(start, end)
    kept = [p["category"] for p in PAYMENTS if pred(p)]
    assert kept == ["Lab", "Library"]


def test_amount_range() -> None:
    pred = in_amount_range(Decimal("200"), Decimal("300"))
    assert [p["category"] for p in PAYMENTS if pred(p)] == ["Lab", "Library"]


@pytest.mark.parametrize("raw", [None, "", "  ", "abc", 0, "-5", "NaN", "Infinity", True])
def test_validate_amount_rejects(raw) -> None:
    with pytest.raises(ValidationError):
        validate_amount(raw)


def test_validate_amount_accepts_numeric_strings() -> None:
    assert validate_amount(" 150.25 ") == Decimal("150.25")
    assert validate_amount(75) == Decimal("75")


@pytest.mark.parametrize("raw", ["0.001", "12.345", "10000000000", "1E+12"])
def test_validate_amount_rejects_values_a_money_column_cannot_hold(raw) -> None:
    with pytest.raises(ValidationError):
        validate_amount(raw)


def test_validate_amount_edges_of_a_money_column() -> None:
    assert validate_amount("0.01") == Decimal("0.01")
    assert validate_amount("9999999999.99") == Decimal("9999999999.99")
    assert validate_amount("12.50") == Decimal("12.5")


def test_pages_concatenate_to_the_whole_sequence() -> None:
    items = list(range(23))
    collected = []
    page = 1
    while True:
        rows, info = paginate(items, page, 5)
        collected.extend(rows)
        if not info.has_next_page:
            break
        page += 1

    assert collected == items
    assert info.total_pages == 5
    assert info.total == 23
    assert info.has_prev_page is True


def test_paginate_past_the_end_is_empty() -> None:
    rows, info = paginate([1, 2, 3], page=4, limit=2)
    assert rows == []
    assert info.total_pages == 2
    assert info.has_next_page is False


def test_paginate_rejects_bad_page() -> None:
    with pytest.raises(ValidationError):
        paginate([1], page=0)


def test_resolve_date_window() -> None:
    start, end = resolve_date_window(year=2024, month=2)
    assert start == datetime(2024, 2, 1)
    assert end.date() == date(2024, 2, 29)

    start, end = resolve_date_window(year=2023)
    assert start == datetime(2023, 1, 1)
    assert end.date() == date(2023, 12, 31)

    # Explicit range wins over year/month
    start, end = resolve_date_window(year=2023, month=1, from_date=date(2024, 5, 1))
    assert start == datetime(2024, 5, 1)
    assert end is None

    assert resolve_date_window() == (None, None)

    with pytest.raises(ValidationError):
        resolve_date_window(year=2024, month=13)


def test_naive_utc() -> None:
    aware = datetime(2024, 1, 1, 5, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert naive_utc(aware) == datetime(2024, 1, 1, 0, 0)
    assert naive_utc(datetime(2024, 1, 1)) == datetime(2024, 1, 1)
    assert naive_utc(None) is None


def test_facet_values_exclude_shifted_columns() -> None:
    assert is_valid_facet("TE")
    assert not is_valid_facet("someone@college.edu")
    assert not is_valid_facet("")
    assert not is_valid_facet(None)
    assert not is_valid_facet("x" * 60)
