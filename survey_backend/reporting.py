"""
Reporting Helper

Aggregate statistics and CSV export over the stored survey responses.
"""

import csv
import io

from survey_backend.scoring import CATEGORIES, DEFAULT_TIE_LABEL

RECENT_LIMIT = 10
UNKNOWN_CATEGORY = "Unknown"

CSV_HEADER = [
    "ID",
    "Timestamp",
    "Score A",
    "Score B",
    "Score C",
    "Dominant Category",
    "Total Yes",
    "Total No",
    "Total Questions",
    "IP Address",
]


class NoDataError(Exception):
    """Raised when a report is requested over an empty collection."""


def category_score(record, category):
    """Total score of one category, preferring the explicit total field."""
    value = record.get(f"totalScore{category}")
    if value is None:
        value = (record.get("categoryScores") or {}).get(category, 0)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def compute_stats(records, tie_label=DEFAULT_TIE_LABEL, recent_limit=RECENT_LIMIT):
    """
    Compute aggregate statistics over all records.

    Args:
        records: Response records in insertion order
        tie_label: Label used for tied dominant categories

    Returns:
        dict: totalResponses, averageScores, dominantCategories, recentSubmissions
    """
    total = len(records)

    average_scores = {}
    for category in CATEGORIES:
        if total:
            average_scores[category] = round(
                sum(category_score(record, category) for record in records) / total, 2
            )
        else:
            average_scores[category] = 0

    dominant_categories = {category: 0 for category in CATEGORIES}
    dominant_categories[tie_label] = 0
    dominant_categories[UNKNOWN_CATEGORY] = 0
    for record in records:
        label = record.get("dominantCategory") or UNKNOWN_CATEGORY
        dominant_categories[label] = dominant_categories.get(label, 0) + 1

    recent = list(reversed(records[-recent_limit:])) if recent_limit > 0 else []

    return {
        "totalResponses": total,
        "averageScores": average_scores,
        "dominantCategories": dominant_categories,
        "recentSubmissions": recent,
    }


def _text(value):
    # One physical line per record
    if value is None:
        return ""
    return " ".join(str(value).splitlines())


def _number(value):
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def export_csv(records):
    """
    Serialize records as CSV.

    String fields are wrapped in double quotes with embedded quotes doubled;
    numeric fields are written bare.

    Raises:
        NoDataError: If there are no records
    """
    if not records:
        raise NoDataError("No data to export")

    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADER) + "\n")

    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for record in records:
        writer.writerow([
            _text(record.get("id")),
            _text(record.get("timestamp")),
            _number(record.get("totalScoreA")),
            _number(record.get("totalScoreB")),
            _number(record.get("totalScoreC")),
            _text(record.get("dominantCategory")),
            _number(record.get("totalYes")),
            _number(record.get("totalNo")),
            _number(record.get("totalQuestions")),
            _text(record.get("ipAddress")),
        ])

    return buffer.getvalue()
