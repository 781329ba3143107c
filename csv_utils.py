import csv
import re
from io import StringIO
from typing import Optional

from schemas import BudgetReportRawData, PostingRow

HEADER = [
    "Section",
    "Category",
    "Purpose",
    "PostingId",
    "BookingDate",
    "ValutaDate",
    "Amount",
    "Split",
    "Contact",
    "SavingsPlan",
    "Description",
]


def sanitize_csv_value(value: Optional[str]) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def _posting_line(
    section: str, category: str, purpose: str, row: PostingRow
) -> list[str]:
    return [
        section,
        sanitize_csv_value(category),
        sanitize_csv_value(purpose),
        str(row.posting_id),
        row.booking_date.isoformat(),
        row.valuta_date.isoformat() if row.valuta_date else "",
        # Amounts are numbers, never sanitized; a leading minus is expected.
        f"{row.amount:.2f}",
        "1" if row.is_split else "0",
        sanitize_csv_value(row.contact_name),
        sanitize_csv_value(row.savings_plan_name),
        sanitize_csv_value(row.description),
    ]


def export_raw_data(raw: BudgetReportRawData) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(HEADER)
    for category in raw.categories:
        for purpose in category.purposes:
            writer.writerows(
                _posting_line("budgeted", category.name, purpose.name, row)
                for row in purpose.postings
            )
    for purpose in raw.uncategorized_purposes:
        writer.writerows(
            _posting_line("budgeted", "", purpose.name, row) for row in purpose.postings
        )
    writer.writerows(
        _posting_line(
            "unbudgeted",
            row.budget_category_name or "",
            row.budget_purpose_name or "",
            row,
        )
        for row in raw.unbudgeted_postings
    )
    return output.getvalue()
