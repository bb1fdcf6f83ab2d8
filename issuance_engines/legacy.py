"""
Module: issuance_engines.legacy
Responsibility:
    Decode the structured markers older clients embedded in an item's
    free-text ``description`` (``PURPOSE:``, ``ISSUED TO:`` ...) and build the
    text blocks appended to it on issue and return.

Architecture position:
    Engines -- pure, zero I/O.  The decoder is a fallback: callers consult it
    only when the structured fields are absent.  Everything that reads the
    legacy markers goes through ``decode_legacy_description`` so the
    heuristic can be removed in one place.

Invariants enforced:
    - Descriptions are only ever appended to, never rewritten.
    - When a marker occurs more than once (one block per issue/return
      cycle) the last occurrence wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from issuance_kernel.domain.records import parse_timestamp

_MARKERS: dict[str, re.Pattern[str]] = {
    "purpose": re.compile(r"PURPOSE:[ \t]*(.+)"),
    "issued_to": re.compile(r"ISSUED TO:[ \t]*(.+)"),
    "issued_by": re.compile(r"ISSUED BY:[ \t]*(.+)"),
    "issue_date": re.compile(r"ISSUE DATE:[ \t]*(.+)"),
    "returned_on": re.compile(r"RETURNED ON:[ \t]*(.+)"),
    "returned_by": re.compile(r"RETURNED BY:[ \t]*(.+)"),
    "return_notes": re.compile(r"RETURN NOTES:[ \t]*(.+)"),
}


@dataclass(frozen=True)
class LegacyFields:
    """Values recovered from a legacy description. Absent markers are None."""

    purpose: str | None = None
    issued_to: str | None = None
    issued_by: str | None = None
    issue_date: datetime | None = None
    returned_on: datetime | None = None
    returned_by: str | None = None
    return_notes: str | None = None


def _last_match(pattern: re.Pattern[str], text: str) -> str | None:
    matches = pattern.findall(text)
    if not matches:
        return None
    value = matches[-1].strip()
    return value or None


def decode_legacy_description(description: str | None) -> LegacyFields:
    """Extract legacy marker values from a free-text description."""
    if not description:
        return LegacyFields()

    raw = {name: _last_match(pattern, description) for name, pattern in _MARKERS.items()}
    return LegacyFields(
        purpose=raw["purpose"],
        issued_to=raw["issued_to"],
        issued_by=raw["issued_by"],
        issue_date=parse_timestamp(raw["issue_date"]),
        returned_on=parse_timestamp(raw["returned_on"]),
        returned_by=raw["returned_by"],
        return_notes=raw["return_notes"],
    )


def append_return_note(
    description: str | None,
    returned_on: datetime,
    returned_by: str,
    notes: str,
) -> str:
    """Append a human-readable return block, preserving prior content."""
    block = (
        f"RETURNED ON: {returned_on.isoformat()}\n"
        f"RETURNED BY: {returned_by}\n"
        f"RETURN NOTES: {notes}"
    )
    return _append_block(description, block)


def append_issue_note(
    description: str | None,
    issued_on: datetime,
    issued_to: str,
    issued_by: str,
    purpose: str,
) -> str:
    """Append a human-readable issue block, preserving prior content."""
    block = (
        f"ISSUED TO: {issued_to}\n"
        f"ISSUED BY: {issued_by}\n"
        f"ISSUE DATE: {issued_on.isoformat()}\n"
        f"PURPOSE: {purpose}"
    )
    return _append_block(description, block)


def _append_block(description: str | None, block: str) -> str:
    if not description:
        return block
    return f"{description}\n\n{block}"
