"""CSV export helpers for report downloads."""

import csv
import io
from typing import Any, Iterable, Sequence

from fastapi.responses import Response

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """
    Encode a header row plus data rows.

    Every field is quoted and embedded quotes are doubled. Rows are joined
    with "\\n" and there is no trailing newline. None becomes an empty field.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().removesuffix("\n")


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
