"""Tests for P&L CSV parsing and merging."""

from __future__ import annotations

from pathlib import Path

import pytest

from plforecast.importer import (
    CSVImportError,
    load_pl_csv,
    map_category,
    merge_imported,
    parse_amount,
    parse_month_header,
    parse_pl_csv,
    to_account_lines,
)
from plforecast.types import AccountLine, Category


def test_sign_is_dropped() -> None:
    parsed = parse_pl_csv("Account Name,Category,Jul 2024,Aug 2024\nSales,Revenue,1000,-2000\n")
    assert len(parsed.accounts) == 1
    acct = parsed.accounts[0]
    assert acct.name == "Sales"
    assert acct.category == Category.REVENUE
    assert acct.months == {"2024-07": 1000.0, "2024-08": 2000.0}
    assert parsed.month_keys == ["2024-07", "2024-08"]
    assert (parsed.start_month, parsed.end_month) == ("2024-07", "2024-08")


@pytest.mark.parametrize(
    "label,expected",
    [
        ("Jul 2024", "2024-07"),
        ("jul-24", "2024-07"),
        ("July/2024", "2024-07"),
        ("Sept 2024", "2024-09"),
        ("Dec. 2025", "2025-12"),
        ("Total", None),
        ("Foo 2024", None),
        ("Marketing 24", None),
        ("Junk 2024", None),
        ("Augmented 2024", None),
        ("september 2024", "2024-09"),
        ("Account Code", None),
    ],
)
def test_parse_month_header(label: str, expected: str | None) -> None:
    assert parse_month_header(label) == expected


@pytest.mark.parametrize(
    "label,category,recognised",
    [
        ("Revenue", Category.REVENUE, True),
        ("Cost of Sales", Category.COST_OF_SALES, True),
        ("COGS", Category.COST_OF_SALES, True),
        ("Cost of Goods", Category.COST_OF_SALES, True),
        ("Trading Income", Category.REVENUE, True),
        ("Other Income", Category.OTHER_INCOME, True),
        ("Other Expenses", Category.OTHER_EXPENSES, True),
        ("Expenses", Category.OPERATING_EXPENSES, True),
        ("Overheads", Category.OPERATING_EXPENSES, False),
        ("", Category.OPERATING_EXPENSES, False),
    ],
)
def test_map_category(label: str, category: Category, recognised: bool) -> None:
    assert map_category(label) == (category, recognised)


def test_parse_amount() -> None:
    assert parse_amount("$1,234.50") == 1234.5
    assert parse_amount("-20") == 20.0
    assert parse_amount("(1,000)") == 1000.0
    assert parse_amount("$(250.50)") == 250.5
    assert parse_amount("") is None
    assert parse_amount("n/a") is None
    assert parse_amount(None) is None


def test_totals_blanks_and_extra_columns() -> None:
    text = (
        "Account Code,Account Name,Category,Jul 2024,Aug 2024\n"
        "200,Sales,Revenue,\"$1,000\",\n"
        "999,Total Revenue,Revenue,1000,0\n"
        "400,Rent,Expenses,500,500\n"
        ",,Revenue,1,1\n"
        "998,Net Profit Summary,Other,0,0\n"
    )
    parsed = parse_pl_csv(text)
    assert [a.name for a in parsed.accounts] == ["Sales", "Rent"]
    assert parsed.accounts[0].months == {"2024-07": 1000.0}
    assert parsed.warnings == []


def test_unknown_category_warns_once() -> None:
    text = "Account Name,Category,Jul 2024\nA,Overheads,1\nB,Overheads,2\nC,Misc,3\n"
    parsed = parse_pl_csv(text)
    assert all(a.category == Category.OPERATING_EXPENSES for a in parsed.accounts)
    assert len(parsed.warnings) == 2


def test_headers_are_case_insensitive() -> None:
    parsed = parse_pl_csv("account name, CATEGORY ,Jul 2024\nSales,Revenue,5\n")
    assert parsed.accounts[0].months == {"2024-07": 5.0}


@pytest.mark.parametrize(
    "text,message",
    [
        ("", "Could not read CSV"),
        ("Name,Category,Jul 2024\nSales,Revenue,1\n", "Missing required columns: Account Name"),
        ("Account Name,Category,Notes\nSales,Revenue,x\n", "No month columns"),
        ("Account Name,Category,Jul 2024\nTotal Revenue,Revenue,1\n", "No valid account rows"),
        ("Account Name,Category,Jul 2024\n", "No valid account rows"),
    ],
)
def test_import_errors(text: str, message: str) -> None:
    with pytest.raises(CSVImportError, match=message):
        parse_pl_csv(text)


def test_import_error_is_value_error() -> None:
    assert issubclass(CSVImportError, ValueError)


def test_load_pl_csv_strips_bom(tmp_path: Path) -> None:
    path = tmp_path / "pl.csv"
    path.write_bytes("\ufeffAccount Name,Category,Jul 2024\nSales,Revenue,10\n".encode("utf-8"))
    parsed = load_pl_csv(path)
    assert parsed.accounts[0].name == "Sales"


def test_load_pl_csv_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_pl_csv(tmp_path / "nope.csv")


def test_to_account_lines_keeps_file_order() -> None:
    parsed = parse_pl_csv("Account Name,Category,Jul 2024\nSales,Revenue,1\nRent,Expenses,2\n")
    lines = to_account_lines(parsed)
    assert [(l.account_name, l.sort_order) for l in lines] == [("Sales", 0), ("Rent", 1)]
    assert lines[1].actual_months == {"2024-07": 2.0}
    assert lines[1].forecast_months == {}


def test_merge_baseline_then_ytd() -> None:
    baseline = parse_pl_csv("Account Name,Category,Jun 2025\nSales,Revenue,100\nRent,Expenses,50\n")
    ytd = parse_pl_csv("Account Name,Category,Jul 2025\nSales,Revenue,120\nSoftware,Expenses,9\n")
    existing = [AccountLine("Sales", Category.REVENUE, forecast_months={"2025-12": 1.0}, id="keep")]

    merged = merge_imported(merge_imported(existing, baseline), ytd)
    by_name = {l.account_name: l for l in merged}
    assert [l.account_name for l in merged] == ["Sales", "Rent", "Software"]
    assert by_name["Sales"].actual_months == {"2025-06": 100.0, "2025-07": 120.0}
    assert by_name["Sales"].forecast_months == {"2025-12": 1.0}
    assert by_name["Sales"].id == "keep"
    assert by_name["Software"].actual_months == {"2025-07": 9.0}
    assert existing[0].actual_months == {}


def test_month_like_words_are_not_month_columns() -> None:
    parsed = parse_pl_csv("Account Name,Category,Marketing 24,Mar 2024\nSales,Revenue,7,1000\n")
    assert parsed.month_keys == ["2024-03"]
    assert parsed.accounts[0].months == {"2024-03": 1000.0}


def test_two_columns_for_one_month_is_an_error() -> None:
    with pytest.raises(CSVImportError, match="both 2024-03"):
        parse_pl_csv("Account Name,Category,Mar 2024,March 2024\nSales,Revenue,7,1000\n")


def test_bracketed_negatives_are_kept() -> None:
    parsed = parse_pl_csv("Account Name,Category,Jul 2024,Aug 2024\nRefunds,Revenue,\"(1,000)\",500\n")
    assert parsed.accounts[0].months == {"2024-07": 1000.0, "2024-08": 500.0}
