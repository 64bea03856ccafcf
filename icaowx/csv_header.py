"""CSV reading for loosely formatted feeds.

Some feeds start with one or more info/diagnostic lines before the line of
column names, and the column order is not guaranteed. The header row is
detected with a simple heuristic: it is the first row with more than one
field. This is best-effort and not a general CSV dialect detector.
"""

import csv
from typing import Iterable, Iterator, List, Optional


class CsvHeaderError(Exception):
    """Raised when the header row cannot be resolved."""

    def __init__(self, message: str, indices: Optional[List[int]] = None):
        super().__init__(message)
        self.indices = indices if indices is not None else []


class CsvRowWidthError(ValueError):
    """Raised when a row does not have the expected number of fields."""

    def __init__(self, row: List[str], expected: int):
        super().__init__(f"Row has {len(row)} fields, expected {expected}")
        self.row = row
        self.expected = expected


class CsvRecordReader:
    """
    Thin wrapper over csv.reader that can enforce a fixed row width.

    fields_per_record is None when any width is accepted.
    """

    def __init__(self, lines: Iterable[str]):
        self._reader = csv.reader(lines)
        self.fields_per_record: Optional[int] = None
        self.rows_read = 0

    def __iter__(self) -> Iterator[List[str]]:
        return self

    def __next__(self) -> List[str]:
        row = next(self._reader)
        self.rows_read += 1
        if self.fields_per_record is not None and len(row) != self.fields_per_record:
            raise CsvRowWidthError(row, self.fields_per_record)
        return row


def parse_csv_header(reader: CsvRecordReader, field_names: List[str]) -> List[int]:
    """
    Skip leading non-CSV lines and locate named columns in the header row.

    After the header row is found, the reader's expected row width is set
    to the width of the header row.

    Args:
        reader: Reader positioned at the start of the stream
        field_names: Column names to look up, in the order wanted

    Returns:
        Zero-based column index for each requested name

    Raises:
        CsvHeaderError: If no names were given, the stream ended before a
            header row, or a requested name is missing. In the last case
            the exception carries all indices with -1 for missing names.
    """
    if not field_names:
        raise CsvHeaderError("No field names specified")

    result = [-1] * len(field_names)
    reader.fields_per_record = None
    while True:
        try:
            record = next(reader)
        except StopIteration:
            raise CsvHeaderError("Stream ended before a CSV header row was found", result) from None
        except csv.Error as e:
            raise CsvHeaderError(f"Error parsing CSV header: {e}", result) from e
        if len(record) > 1:
            break

    reader.fields_per_record = len(record)
    for i, s in enumerate(record):
        for j, f in enumerate(field_names):
            if s == f and result[j] == -1:
                result[j] = i

    missing = [field_names[j] for j, idx in enumerate(result) if idx < 0]
    if missing:
        raise CsvHeaderError(f"Fields not found in CSV header: {', '.join(missing)}", result)
    return result
