"""
CSV and plain email-list parsing.

Both parsers are pure with respect to the rest of the CLI: they return the
valid records alongside a list of row-level errors and never print anything.
Unreadable files raise ``OSError``; structurally broken CSV raises
``CSVParseError``.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TAG_SPLIT_RE = re.compile(r"[,;]")


class CSVParseError(ValueError):
    pass


@dataclass
class CSVErrorDetail:
    line: int
    message: str
    column: Optional[str] = None
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"line": self.line, "message": self.message}
        if self.column:
            out["column"] = self.column
        if self.value:
            out["value"] = self.value
        return out


@dataclass
class SubscriberRecord:
    email: str
    name: Optional[str] = None
    tags: Optional[List[str]] = None
    remove_tags: Optional[List[str]] = None
    fields: Dict[str, str] = field(default_factory=dict)


@dataclass
class SubscriberParseResult:
    records: List[SubscriberRecord]
    errors: List[CSVErrorDetail]


@dataclass
class EmailListParseResult:
    emails: List[str]
    errors: List[CSVErrorDetail]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def _read(path: str) -> str:
    with open(path, encoding="utf-8-sig", newline="") as f:
        return f.read()


def _find_column(columns: List[str], target: str) -> Optional[str]:
    for column in columns:
        if column and column.strip().lower() == target:
            return column
    return None


def _split_tags(raw: Optional[str]) -> Optional[List[str]]:
    if not raw:
        return None
    tags = [t.strip() for t in TAG_SPLIT_RE.split(raw) if t.strip()]
    return tags or None


def _dict_rows(content: str) -> Tuple[List[str], List[Tuple[int, Dict[str, str]]]]:
    """Rows as (physical line number, {column: trimmed value})."""
    reader = csv.DictReader(io.StringIO(content), skipinitialspace=True)
    try:
        columns = [c.strip() if c else c for c in (reader.fieldnames or [])]
        reader.fieldnames = columns
        rows = []
        for row in reader:
            cleaned = {k: (v or "").strip() for k, v in row.items() if isinstance(v, str) or v is None}
            rows.append((reader.line_num, cleaned))
    except csv.Error as ex:
        raise CSVParseError(f"CSV parse error: {ex}") from ex
    return columns, rows


def _check_email(raw: str, line: int, column: Optional[str]) -> Optional[CSVErrorDetail]:
    if not raw:
        return CSVErrorDetail(line, "Missing email", column)
    if not is_valid_email(raw):
        return CSVErrorDetail(line, "Invalid email format", column, raw)
    return None


def parse_subscriber_csv(path: str) -> SubscriberParseResult:
    """Parse a subscriber CSV with a required ``email`` column.

    ``name``, ``tags`` and ``remove_tags`` columns are recognised; any other
    non-empty column becomes a custom field.
    """
    columns, rows = _dict_rows(_read(path))
    records: List[SubscriberRecord] = []
    errors: List[CSVErrorDetail] = []
    if not rows:
        return SubscriberParseResult(records, errors)

    email_key = _find_column(columns, "email")
    if not email_key:
        errors.append(CSVErrorDetail(1, "CSV missing required column 'email'", "email"))
        return SubscriberParseResult(records, errors)

    name_key = _find_column(columns, "name")
    tags_key = _find_column(columns, "tags")
    remove_key = _find_column(columns, "remove_tags")
    reserved = {k for k in (email_key, name_key, tags_key, remove_key) if k}

    for line, row in rows:
        raw_email = row.get(email_key, "")
        problem = _check_email(raw_email, line, email_key)
        if problem:
            errors.append(problem)
            continue

        record = SubscriberRecord(email=normalize_email(raw_email))
        if name_key and row.get(name_key):
            record.name = row[name_key]
        record.tags = _split_tags(row.get(tags_key)) if tags_key else None
        record.remove_tags = _split_tags(row.get(remove_key)) if remove_key else None
        for column, value in row.items():
            if column and column not in reserved and value:
                record.fields[column] = value
        records.append(record)

    return SubscriberParseResult(records, errors)


def parse_email_list(path: str) -> EmailListParseResult:
    """Parse either a CSV with an ``email`` column or one address per line.

    Addresses are lowercased and deduplicated, keeping first-seen order.
    """
    content = _read(path)
    emails: Dict[str, None] = {}
    errors: List[CSVErrorDetail] = []

    csv_rows = None
    try:
        columns, rows = _dict_rows(content)
        email_key = _find_column(columns, "email")
        if rows and email_key:
            csv_rows = (email_key, rows)
    except CSVParseError:
        csv_rows = None

    if csv_rows:
        email_key, rows = csv_rows
        for line, row in rows:
            raw_email = row.get(email_key, "")
            problem = _check_email(raw_email, line, email_key)
            if problem:
                errors.append(problem)
                continue
            emails.setdefault(normalize_email(raw_email), None)
        return EmailListParseResult(list(emails), errors)

    for index, line in enumerate(content.splitlines(), start=1):
        trimmed = line.strip()
        if not trimmed:
            continue
        if not is_valid_email(trimmed):
            errors.append(CSVErrorDetail(index, "Invalid email format", value=trimmed))
            continue
        emails.setdefault(normalize_email(trimmed), None)

    return EmailListParseResult(list(emails), errors)
