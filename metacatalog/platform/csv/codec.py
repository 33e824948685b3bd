"""CSV wire format: ``,`` between fields, ``;`` inside multi-valued fields."""

from __future__ import annotations

import csv
import io
from typing import Iterable, List, Sequence

FIELD_DELIMITER = ","
VALUE_DELIMITER = ";"


def parse(text: str) -> List[List[str]]:
    """Split raw CSV text into records; blank lines are dropped."""
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.reader(io.StringIO(text), delimiter=FIELD_DELIMITER)
    return [record for record in reader if record and any(field.strip() for field in record)]


def format_records(records: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=FIELD_DELIMITER, lineterminator="\n")
    for record in records:
        writer.writerow(list(record))
    return buffer.getvalue()


def split_values(raw: str) -> List[str]:
    return [v.strip() for v in raw.split(VALUE_DELIMITER) if v.strip()]


def join_values(values: Iterable[str]) -> str:
    return VALUE_DELIMITER.join(values)


__all__ = ["FIELD_DELIMITER", "VALUE_DELIMITER", "format_records", "join_values", "parse", "split_values"]
