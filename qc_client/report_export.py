"""
qc_client/report_export.py
-----------------------------------------------------------------------------
Flat CSV rendering of an analysis result, plus the timestamp and filename
helpers shared with session naming.

Each function is a pure formatter: it takes model objects or scalars and
returns a string.  No I/O, no network.

Exports
-------
to_csv(result) -> str
    One quoted row per validation check, job-level fields repeated per row.

export_filename(job_id, today=None) -> str
    ``analysis_results_{job_id}_{YYYY-MM-DD}.csv``.

format_timestamp(value) -> str
    ISO-8601 string or datetime → ``YYYY-MM-DD HH:MM:SS`` in UTC.

Design notes
------------
The CSV is deliberately denormalised: job id, overall status and creation
time are repeated on every row so the file opens directly in a spreadsheet
without a join.  Rows are written with :mod:`csv` quoting every cell (so an
embedded double quote is doubled), terminated by ``\\n``, and the final
terminator is dropped.
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone

from qc_client.schema import AnalysisResult

CSV_HEADERS: tuple[str, ...] = (
    "Check Type",
    "Status",
    "Expected Value",
    "Actual Value",
    "Sources Compared",
    "Notes",
    "Job ID",
    "Overall Status",
    "Created At",
)

SOURCES_SEPARATOR = " vs "

# -----------------------------------------------------------------------------
# Timestamps
# -----------------------------------------------------------------------------


def format_timestamp(value: str | datetime) -> str:
    """
    Render ``value`` as ``YYYY-MM-DD HH:MM:SS`` in UTC.

    Naive timestamps (no offset) are taken to already be UTC.  A trailing
    ``Z`` is accepted.  Fractional seconds are truncated.

    Raises
    ------
    ValueError : ``value`` is not a parseable ISO-8601 timestamp.
    """
    moment = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def export_filename(job_id: str, today: date | None = None) -> str:
    """
    Download filename for a result export.

    The date part is the day of the export (UTC), not the job's creation
    date.

    Example: ``analysis_results_job-42_2026-10-19.csv``
    """
    today = today or datetime.now(timezone.utc).date()
    return f"analysis_results_{job_id}_{today.isoformat()}.csv"


# -----------------------------------------------------------------------------
# CSV
# -----------------------------------------------------------------------------


def to_csv(result: AnalysisResult) -> str:
    """
    Convert ``result`` into CSV text.

    Parameters
    ----------
    result : A completed job's report, current or from session history.

    Returns
    -------
    str : Header row plus one row per check, in the service's order.
    """
    created_at = format_timestamp(result.created_at)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for check in result.checks:
        writer.writerow(
            (
                check.check_type,
                check.status.upper(),
                check.expected,
                check.actual,
                SOURCES_SEPARATOR.join(check.sources_compared),
                check.notes or "",
                result.job_id,
                result.overall_status,
                created_at,
            )
        )
    return buffer.getvalue().removesuffix("\n")
