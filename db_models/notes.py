# db_models/notes.py
"""
Append-only note logs stored in JSON columns.

A log is a list of {"at": <iso timestamp>, "text": <str>} entries. Entries
are only ever added; writers assign a new list so SQLAlchemy sees the change.
"""
from datetime import datetime


def appended(entries: list[dict] | None, text: str, at: datetime) -> list[dict]:
    """Return a copy of `entries` with one more entry at the end."""
    return [*(entries or []), {"at": at.isoformat(timespec="seconds"), "text": text}]
