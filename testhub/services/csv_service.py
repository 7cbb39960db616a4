"""
CSV parsing and formatting for the import/export endpoints.

parse_csv():        text/bytes → list of cell lists (BOM stripped, cells trimmed)
to_records():       first row is the header; every non-blank data row becomes a
                    dict keyed by normalized header, plus ``row_num`` (1-based
                    line in the source file, header = 1)
require_columns():  header check, raises ImportFailedError
missing_fields():   per-row presence check
write_csv():        header + rows → CSV text
"""

import csv
import io

from testhub.core.exceptions import ImportFailedError


def parse_csv(content: str | bytes) -> list[list[str]]:
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ImportFailedError("CSV file must be UTF-8 encoded") from exc
    elif content.startswith("\ufeff"):
        content = content[1:]

    reader = csv.reader(io.StringIO(content))
    return [[cell.strip() for cell in row] for row in reader]


def _normalize_header(name: str) -> str:
    return name.strip().lower()


def to_records(matrix: list[list[str]]) -> list[dict]:
    """Map data rows onto the header. Blank rows are skipped but keep their number."""
    if not matrix:
        return []
    header = [_normalize_header(h) for h in matrix[0]]
    records = []
    for row_num, row in enumerate(matrix[1:], start=2):
        if not any(cell for cell in row):
            continue
        record = {name: (row[i] if i < len(row) else "") for i, name in enumerate(header) if name}
        record["row_num"] = row_num
        records.append(record)
    return records


def load_records(content: str | bytes, required_columns: tuple[str, ...]) -> list[dict]:
    """Parse, header-check and map in one go. Empty input is a hard failure."""
    matrix = parse_csv(content or "")
    records = to_records(matrix)
    if not records:
        raise ImportFailedError("CSV file is empty or has no data rows")
    require_columns(matrix[0], required_columns)
    return records


def require_columns(header: list[str], required: tuple[str, ...]) -> None:
    present = {_normalize_header(h) for h in header}
    missing = [c for c in required if c not in present]
    if missing:
        raise ImportFailedError(
            f"CSV must have column(s): {', '.join(missing)}. "
            f"Found columns: {', '.join(h for h in header if h)}"
        )


def missing_fields(record: dict, required: tuple[str, ...]) -> list[str]:
    return [f for f in required if not (record.get(f) or "").strip()]


def write_csv(header: list[str], rows: list[list]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    writer.writerows(rows)
    return output.getvalue()
