"""Recipient list loading from CSV."""

import csv
import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from .exceptions import RecipientError
from .models import RecipientRecord, RecipientRole

logger = logging.getLogger(__name__)

COLUMN_ALIASES: Dict[str, tuple] = {
    "group_key": ("debtor code", "debtor_code", "debtorcode", "code", "first name"),
    "organization_name": ("organization name", "organization_name", "organization", "organisation"),
    "notes": ("notes", "note"),
    "email": ("email", "e-mail", "email address", "company email"),
    "role": ("label", "role", "type"),
}

REQUIRED_COLUMNS = ("group_key", "email")

ROLE_ALIASES: Dict[str, RecipientRole] = {
    "to": RecipientRole.PRIMARY,
    "work": RecipientRole.PRIMARY,
    "primary": RecipientRole.PRIMARY,
    "cc": RecipientRole.OBSERVER,
    "view": RecipientRole.OBSERVER,
    "observer": RecipientRole.OBSERVER,
    "bcc": RecipientRole.SILENT,
    "private": RecipientRole.SILENT,
    "silent": RecipientRole.SILENT,
}


def parse_role(value: Optional[str]) -> RecipientRole:
    """Map a label column value to a role; blank means To."""
    if not value or not value.strip():
        return RecipientRole.PRIMARY
    role = ROLE_ALIASES.get(value.strip().lower())
    if role is None:
        raise RecipientError(f"Unknown recipient label: {value!r}")
    return role


def _map_columns(fieldnames: List[str]) -> Dict[str, str]:
    normalized = {name.strip().lower(): name for name in fieldnames if name}
    mapping = {}
    for field, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                mapping[field] = normalized[alias]
                break
    missing = [field for field in REQUIRED_COLUMNS if field not in mapping]
    if missing:
        raise RecipientError(
            f"Recipient list is missing required columns: {missing}",
            context={"columns": fieldnames},
        )
    return mapping


def _cell(row: Dict[str, Optional[str]], column: Optional[str]) -> Optional[str]:
    if column is None:
        return None
    value = row.get(column)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_recipients(text: str) -> List[RecipientRecord]:
    """Parse CSV text into recipient records in file order.

    Rows without a group key or email are skipped with a warning.

    Raises:
        RecipientError: If the CSV is malformed, required columns are missing
            or a label is unknown
    """
    try:
        return _parse_rows(csv.DictReader(io.StringIO(text)))
    except csv.Error as e:
        raise RecipientError(f"Malformed recipient list: {e}", cause=e) from e


def _parse_rows(reader: csv.DictReader) -> List[RecipientRecord]:
    if not reader.fieldnames:
        raise RecipientError("Recipient list is empty")
    columns = _map_columns(list(reader.fieldnames))

    records: List[RecipientRecord] = []
    for line_number, row in enumerate(reader, start=2):
        group_key = _cell(row, columns["group_key"])
        email = _cell(row, columns["email"])
        if not group_key or not email:
            logger.warning("Skipping recipient row %s: missing debtor code or email", line_number)
            continue

        try:
            role = parse_role(_cell(row, columns.get("role")))
        except RecipientError as e:
            raise RecipientError(f"Line {line_number}: {e.message}", cause=e) from e

        records.append(
            RecipientRecord(
                group_key=group_key,
                email=email,
                role=role,
                organization_name=_cell(row, columns.get("organization_name")),
                notes=_cell(row, columns.get("notes")),
            )
        )

    logger.info("Loaded %s recipients", len(records))
    return records


def load_recipients(path: Union[str, Path]) -> List[RecipientRecord]:
    """Load recipient records from a CSV file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise RecipientError(f"Cannot read recipient list {path}: {e}", cause=e) from e
    except UnicodeDecodeError as e:
        raise RecipientError(f"Recipient list {path} is not UTF-8 text: {e}", cause=e) from e
    return parse_recipients(text)
