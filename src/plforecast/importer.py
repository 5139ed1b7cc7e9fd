"""Parse P&L exports (one row per account, one column per month) into account lines."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path

import pandas as pd

from .types import AccountLine, Category, MonthMap

logger = logging.getLogger(__name__)

_MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]
# full names and three-letter abbreviations only, so "Marketing 24" is not March
_MONTHS = {name: i for i, name in enumerate(_MONTH_NAMES, start=1)}
_MONTHS.update({name[:3]: i for i, name in enumerate(_MONTH_NAMES, start=1)})
_MONTHS["sept"] = 9
_MONTH_HEADER_RE = re.compile(r"^([a-z]+)\.?\s*[\s\-/]\s*(\d{4}|\d{2})$", re.IGNORECASE)
_PARENS_RE = re.compile(r"^\((.*)\)$")
_AGGREGATE_RE = re.compile(r"total|summary", re.IGNORECASE)

REQUIRED_COLUMNS = ("Account Name", "Category")


class CSVImportError(ValueError):
    """The file cannot be imported; nothing from it should be saved."""


@dataclass(frozen=True)
class ParsedAccount:
    name: str
    category: Category
    months: MonthMap
    raw_category: str = ""


@dataclass(frozen=True)
class ParsedCSV:
    accounts: list[ParsedAccount]
    month_keys: list[str]
    warnings: list[str] = field(default_factory=list)

    @property
    def start_month(self) -> str | None:
        return self.month_keys[0] if self.month_keys else None

    @property
    def end_month(self) -> str | None:
        return self.month_keys[-1] if self.month_keys else None


def parse_month_header(label: str) -> str | None:
    """``"Jul 2024"`` / ``"jul-24"`` / ``"July/2024"`` -> ``"2024-07"``; None when not a month."""
    m = _MONTH_HEADER_RE.match(str(label).strip())
    if not m:
        return None
    month = _MONTHS.get(m.group(1).lower())
    if month is None:
        return None
    year = int(m.group(2))
    if year < 100:
        year += 2000
    return f"{year:04d}-{month:02d}"


def map_category(label: str) -> tuple[Category, bool]:
    """Classify a free-text category label.

    Returns the category and whether the label was recognised; unrecognised
    labels fall back to Operating Expenses.
    """
    text = str(label or "").strip().lower()
    for category in Category:
        if text == category.value.lower():
            return category, True
    if "cost of sales" in text or "cogs" in text or "cost of goods" in text:
        return Category.COST_OF_SALES, True
    if "revenue" in text or "income" in text or "sales" in text:
        return Category.REVENUE, True
    if "expense" in text or "operating" in text:
        return Category.OPERATING_EXPENSES, True
    return Category.OPERATING_EXPENSES, False


def parse_amount(raw: object) -> float | None:
    """Strip ``$`` and ``,`` and take the absolute value; None for blank or non-numeric cells.

    Accounting negatives such as ``(1,000)`` read as 1000.
    """
    text = str(raw if raw is not None else "").strip().replace("$", "").replace(",", "")
    text = _PARENS_RE.sub(r"-\1", text).strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if value != value:  # NaN
        return None
    return abs(value)


def _find_column(columns: list[str], wanted: str) -> str | None:
    for col in columns:
        if col.strip().lower() == wanted.lower():
            return col
    return None


def parse_pl_csv(text: str) -> ParsedCSV:
    try:
        df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False, skipinitialspace=True)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise CSVImportError(f"Could not read CSV: {exc}") from exc

    columns = [str(c) for c in df.columns]
    name_col = _find_column(columns, "Account Name")
    category_col = _find_column(columns, "Category")
    missing = [req for req, col in zip(REQUIRED_COLUMNS, (name_col, category_col)) if col is None]
    if missing:
        raise CSVImportError(f"Missing required columns: {', '.join(missing)}")

    month_cols: dict[str, str] = {}
    for col in columns:
        if col in (name_col, category_col):
            continue
        key = parse_month_header(col)
        if key is None:
            logger.debug("Dropping non-month column %r", col)
            continue
        if key in month_cols:
            raise CSVImportError(f"Columns '{month_cols[key]}' and '{col}' are both {key}")
        month_cols[key] = col
    if not month_cols:
        raise CSVImportError("No month columns found (expected headers like 'Jul 2024')")

    warnings: list[str] = []
    accounts: list[ParsedAccount] = []
    unknown_labels: set[str] = set()
    for _, row in df.iterrows():
        name = str(row[name_col]).strip()
        if not name or _AGGREGATE_RE.search(name):
            continue
        raw_category = str(row[category_col]).strip()
        category, recognised = map_category(raw_category)
        if not recognised and raw_category not in unknown_labels:
            unknown_labels.add(raw_category)
            warnings.append(f"Unrecognised category '{raw_category}' treated as Operating Expenses.")
        months: MonthMap = {}
        for key, col in month_cols.items():
            value = parse_amount(row[col])
            if value is not None:
                months[key] = value
        accounts.append(ParsedAccount(name=name, category=category, months=months, raw_category=raw_category))

    if not accounts:
        raise CSVImportError("No valid account rows found")

    month_keys = sorted(month_cols)
    logger.info("Parsed %d accounts across %d months (%s to %s)", len(accounts), len(month_keys), month_keys[0], month_keys[-1])
    return ParsedCSV(accounts=accounts, month_keys=month_keys, warnings=warnings)


def load_pl_csv(path: str | Path) -> ParsedCSV:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing required input: {path}")
    return parse_pl_csv(path.read_text(encoding="utf-8-sig"))


def to_account_lines(parsed: ParsedCSV) -> list[AccountLine]:
    return [
        AccountLine(
            account_name=acct.name,
            category=acct.category,
            actual_months=dict(acct.months),
            sort_order=i,
        )
        for i, acct in enumerate(parsed.accounts)
    ]


def merge_imported(existing: list[AccountLine], parsed: ParsedCSV) -> list[AccountLine]:
    """Merge imported months into the actuals of same-named lines; unknown accounts become new lines.

    Importing a baseline file and then a YTD file therefore fills one line per account.
    """
    out = list(existing)
    index = {l.account_name: i for i, l in enumerate(out)}
    for acct in parsed.accounts:
        i = index.get(acct.name)
        if i is None:
            index[acct.name] = len(out)
            out.append(
                AccountLine(
                    account_name=acct.name,
                    category=acct.category,
                    actual_months=dict(acct.months),
                    sort_order=len(out),
                )
            )
            continue
        line = out[i]
        out[i] = replace(line, actual_months={**line.actual_months, **acct.months})
    return out
