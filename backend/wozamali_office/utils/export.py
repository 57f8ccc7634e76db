"""CSV export helpers for the office download buttons."""

import csv
import io
from datetime import datetime
from typing import Iterable, Sequence


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def rows_to_csv(rows: Iterable[dict], columns: Sequence[str]) -> str:
    """Render dict rows as CSV text with a header row.

    Only `columns` are written, in that order; missing keys become empty
    cells.
    """
    sio = io.StringIO()
    writer = csv.writer(sio)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(c)) for c in columns])
    return sio.getvalue()


def export_filename(kind: str, now: datetime) -> str:
    return f"{kind}-{now.strftime('%Y%m%d-%H%M%S')}.csv"
