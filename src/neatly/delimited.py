"""Delimited line decoding for header and data rows."""

import csv
from dataclasses import dataclass, field

from .errors import DecodeError


def split_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line into cell texts honouring double-quote quoting."""
    try:
        rows = list(csv.reader([line], delimiter=delimiter, quotechar='"', strict=True))
    except csv.Error as e:
        raise DecodeError(f"malformed delimited line: {e}", cell=line) from e
    if not rows:
        return []
    return rows[0]


@dataclass
class DelimitedRecord:
    """Column expressions of a header row plus the cells of the current data row."""

    columns: list[str]
    delimiter: str = ","
    record: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_header(cls, line: str, delimiter: str = ",") -> "DelimitedRecord":
        columns = [c.strip() for c in split_line(line, delimiter)]
        if not columns or not columns[0]:
            raise DecodeError("header row has no tag in the first column", cell=line)
        return cls(columns=columns, delimiter=delimiter)

    def decode(self, line: str) -> dict[str, str]:
        """Decode a data line against the header columns into ``self.record``."""
        values = split_line(line, self.delimiter)
        self.record = {}
        for column, value in zip(self.columns, values):
            if column:
                self.record[column] = value
        return self.record

    def is_empty(self) -> bool:
        return all(value == "" for value in self.record.values())
