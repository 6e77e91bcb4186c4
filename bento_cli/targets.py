import os
from dataclasses import dataclass
from typing import List, Optional

from bento_cli.csvparse import (CSVErrorDetail, CSVParseError, is_valid_email, normalize_email,
                                parse_email_list)
from bento_cli.errors import EXIT_FILE_IO, EXIT_VALIDATION, CommandError, usage_error
from bento_cli.output import Output

MAX_DISPLAYED_ERRORS = 5


@dataclass
class EmailTargets:
    emails: List[str]
    errors: List[CSVErrorDetail]


def ensure_file_exists(path: str) -> str:
    full_path = os.path.abspath(path)
    label = os.path.basename(path)
    if not os.path.exists(full_path):
        raise CommandError(f"Cannot read {label}: no such file", EXIT_FILE_IO)
    if not os.path.isfile(full_path) or not os.access(full_path, os.R_OK):
        raise CommandError(f"Cannot read {label}: not a readable file", EXIT_FILE_IO)
    return full_path


def resolve_email_targets(email: Optional[str] = None, file: Optional[str] = None) -> Optional[EmailTargets]:
    """Single --email or --file into a validated, lowercased, deduplicated list.

    Returns None when neither selector was given.
    """
    if email is not None:
        trimmed = email.strip()
        if not trimmed:
            raise usage_error("Email cannot be empty.")
        if not is_valid_email(trimmed):
            raise usage_error(f"Invalid email: {trimmed}")
        return EmailTargets([normalize_email(trimmed)], [])

    if file:
        path = ensure_file_exists(file)
        try:
            result = parse_email_list(path)
        except (OSError, CSVParseError, UnicodeDecodeError) as ex:
            raise CommandError(f"Failed to read {file}: {ex}", EXIT_FILE_IO) from ex
        return EmailTargets(result.emails, result.errors)

    return None


def require_targets(email: Optional[str], file: Optional[str]) -> EmailTargets:
    targets = resolve_email_targets(email, file)
    if targets is None:
        raise usage_error("Provide --email <email> or --file <path> to select subscribers.")
    return targets


def print_csv_errors(output: Output, errors: List[CSVErrorDetail], limit: int = MAX_DISPLAYED_ERRORS) -> None:
    if not errors:
        return
    output.error("CSV validation errors:")
    for err in errors[:limit]:
        location = f"{err.column} (line {err.line})" if err.column else f"line {err.line}"
        value_info = f" - {err.value}" if err.value else ""
        output.error(f"  {location}: {err.message}{value_info}")
    if len(errors) > limit:
        output.error(f"  ...and {len(errors) - limit} more error(s)")


def fail_on_csv_errors(output: Output, errors: List[CSVErrorDetail], source: str) -> None:
    """Abort the command (exit 6) if the parser reported any row errors."""
    if not errors:
        return
    print_csv_errors(output, errors)
    raise CommandError(
        f"{len(errors)} invalid row(s) in {os.path.basename(source)}. No changes were made.",
        EXIT_VALIDATION,
        details=[e.to_dict() for e in errors],
    )
