import csv
import io
import logging
from buyer_leads_app.config.choices import CSV_COLUMNS, DEFAULT_STATUS
from buyer_leads_app.processing.validator import validate


class CsvImportResult:
    def __init__(self, success, imported, errors, duplicates=0):
        self.success = success
        self.imported = imported
        self.duplicates = duplicates
        self.errors = errors

    def to_dict(self):
        return {
            "success": self.success,
            "imported": self.imported,
            "duplicates": self.duplicates,
            "errors": list(self.errors),
        }


def parse_csv_content(content):
    """Split raw CSV text into rows of trimmed fields.

    Quote characters only toggle the in-quotes state, so a doubled quote
    inside a quoted field is dropped rather than un-escaped, and quoted
    fields cannot span lines. Exported files without quotes or newlines in
    their values read back unchanged.
    """
    rows = []
    for line in (content or "").split("\n"):
        if not line.strip():
            continue
        row = []
        current = []
        in_quotes = False
        for ch in line:
            if ch == '"':
                in_quotes = not in_quotes
            elif ch == "," and not in_quotes:
                row.append("".join(current).strip())
                current = []
            else:
                current.append(ch)
        row.append("".join(current).strip())
        rows.append(row)
    return rows


def _is_blank_row(row):
    return len(row) == 0 or all(not (cell or "").strip() for cell in row)


def row_to_payload(row):
    payload = {}
    for i, column in enumerate(CSV_COLUMNS):
        payload[column] = row[i] if i < len(row) and row[i] else ""
    if not payload["status"]:
        payload["status"] = DEFAULT_STATUS
    return payload


def validate_csv_rows(rows):
    errors = []
    imported = 0
    # Row 0 is the header
    for i in range(1, len(rows)):
        row = rows[i]
        if _is_blank_row(row):
            continue
        result = validate("csv_row", row_to_payload(row))
        if result.ok:
            imported += 1
        else:
            errors.append({"row": i + 1, "message": result.first_message() or "Invalid data"})
    logging.info("{\"event\":\"csv_rows_validated\",\"valid\":%d,\"errors\":%d}" % (imported, len(errors)))
    return CsvImportResult(success=not errors, imported=imported, errors=errors)


def convert_csv_rows_to_buyers(rows):
    buyers = []
    for row in rows[1:]:
        if _is_blank_row(row):
            continue
        result = validate("csv_row", row_to_payload(row))
        if result.ok:
            buyers.append(result.data)
    return buyers


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def generate_csv_content(buyers):
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for b in buyers or []:
        row = [_cell(b.get(column)) for column in CSV_COLUMNS]
        if not row[-1]:
            row[-1] = DEFAULT_STATUS
        writer.writerow(row)
    return buf.getvalue()


def read_csv_file(path):
    # utf-8-sig drops a BOM written by spreadsheet tools
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        return f.read()


def write_csv_file(path, buyers):
    content = generate_csv_content(buyers)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    logging.info("{\"event\":\"csv_written\",\"rows\":%d}" % len(buyers or []))
    return content
