"""CSV export of extraction results."""

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Optional, Sequence

from intelliocr.schemas import AnalysisOutcome

logger = logging.getLogger(__name__)

FILE_NAME_COLUMN = "File Name"
ID_COLUMN = "ID"


def default_export_name(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"extraction_results_{today.isoformat()}.csv"


def _cell(value) -> str:  # type: ignore[no-untyped-def]
    if value is None:
        return ""
    return str(value)


def records_to_rows(outcomes: Sequence[AnalysisOutcome], fields: Sequence[str]) -> list[list[str]]:
    """Flatten outcomes into CSV rows, header first.

    Only successful outcomes contribute rows; each record gets a 1-based
    index within its source image.
    """
    rows = [[FILE_NAME_COLUMN, ID_COLUMN, *fields]]
    for outcome in outcomes:
        if not outcome.succeeded:
            continue
        for index, record in enumerate(outcome.records, start=1):
            rows.append([outcome.source, str(index), *(_cell(record.get(f)) for f in fields)])
    return rows


def write_csv(outcomes: Sequence[AnalysisOutcome], fields: Sequence[str], path: Path) -> int:
    """Write outcomes to a CSV file with a UTF-8 BOM for spreadsheet apps.

    Returns:
        Number of data rows written
    """
    rows = records_to_rows(outcomes, fields)
    path = Path(path)
    with path.open("w", encoding="utf-8-sig", newline="") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerows(rows)
    logger.info(f"Wrote {len(rows) - 1} row(s) to {path}")
    return len(rows) - 1
