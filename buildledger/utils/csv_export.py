"""CSV export utilities."""

from __future__ import annotations

import csv
import enum
import io
from typing import Iterable

from flask import Response, stream_with_context


def _serialize_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


def export_rows_to_csv(
    rows: Iterable[object],
    columns: Iterable[tuple[str, str]],
    filename: str,
) -> Response:
    columns = list(columns)
    headers = [header for _, header in columns]

    def generate():
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(headers)
        yield output.getvalue()
        output.seek(0)
        output.truncate(0)
        for row in rows:
            if isinstance(row, dict):
                row_values = [_serialize_value(row.get(field)) for field, _ in columns]
            else:
                row_values = [
                    _serialize_value(getattr(row, field, None)) for field, _ in columns
                ]
            writer.writerow(row_values)
            yield output.getvalue()
            output.seek(0)
            output.truncate(0)

    response = Response(stream_with_context(generate()), mimetype="text/csv")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response
