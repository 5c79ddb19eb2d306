"""
VCF Record Model

One data line: eight fixed columns, an optional FORMAT column, and one
column per sample. Each sample column is a colon-delimited list of raw
sub-values aligned with the FORMAT keys.

    1  10177  .  A  AC  .  PASS  .  GT:GP  0/1:0.03,0.97,0

Fixed columns are opaque passthrough text. Trailing sub-values may be
omitted in a sample column; they read as the missing token `.` but are
not physically added back on serialization, so an untouched line
re-serializes exactly as it was read.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import FieldAbsentForRecord, RecordParseError
from .header import FIXED_COLUMNS, UNDECODABLE_PATTERN


MISSING = "."
COLUMN_SEP = "\t"
SUBFIELD_SEP = ":"


@dataclass
class Record:
    """Parsed data line."""
    chrom: str
    pos: str
    id: str
    ref: str
    alt: str
    qual: str
    filter: str
    info: str
    format_keys: Optional[List[str]] = None
    samples: List[List[str]] = field(default_factory=list)
    eol: str = "\n"
    line_number: Optional[int] = None
    _format_raw: Optional[str] = field(default=None, repr=False)

    @classmethod
    def parse(cls, line: str, column_count: Optional[int] = None,
              line_number: Optional[int] = None, eol: str = "\n") -> "Record":
        """
        Parse a data line (without its terminator).

        Args:
            line: The tab-separated data line
            column_count: Number of columns declared by the #CHROM line;
                when given, the data line must match it
            line_number: Position in the file, kept for error reporting
            eol: Original line terminator

        Raises:
            RecordParseError: On a wrong number of columns or text that
                was not valid UTF-8
        """
        if UNDECODABLE_PATTERN.search(line):
            raise RecordParseError("line is not valid UTF-8", line_number)

        parts = line.split(COLUMN_SEP)
        fixed = len(FIXED_COLUMNS)

        if len(parts) < fixed:
            raise RecordParseError(
                f"expected at least {fixed} columns, found {len(parts)}", line_number
            )
        if column_count is not None and len(parts) != column_count:
            raise RecordParseError(
                f"invalid number of columns found, expected {column_count}, "
                f"found {len(parts)}",
                line_number
            )

        format_raw = None
        format_keys = None
        samples: List[List[str]] = []
        if len(parts) > fixed:
            format_raw = parts[fixed]
            if not format_raw:
                raise RecordParseError("FORMAT column cannot be empty", line_number)
            format_keys = [] if format_raw == MISSING else format_raw.split(SUBFIELD_SEP)
            for column in parts[fixed + 1:]:
                if not column:
                    raise RecordParseError("sample column cannot be empty", line_number)
                samples.append(column.split(SUBFIELD_SEP))

        return cls(*parts[:fixed], format_keys=format_keys, samples=samples,
                   eol=eol, line_number=line_number, _format_raw=format_raw)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    def format_index(self, field_id: str) -> Optional[int]:
        """Position of a key in the FORMAT column, or None."""
        if not self.format_keys or field_id not in self.format_keys:
            return None
        return self.format_keys.index(field_id)

    def has_field(self, field_id: str) -> bool:
        return self.format_index(field_id) is not None

    def get_sub_value(self, sample_index: int, field_id: str) -> str:
        """
        Raw sub-value of a field for one sample.

        Returns the missing token for keys truncated off the end of the
        sample column.

        Raises:
            FieldAbsentForRecord: If the FORMAT column does not list field_id
            IndexError: If sample_index is out of range
        """
        index = self.format_index(field_id)
        if index is None:
            raise FieldAbsentForRecord(field_id, self.line_number)
        values = self.samples[sample_index]
        if index >= len(values):
            return MISSING
        return values[index]

    def set_sub_value(self, sample_index: int, field_id: str, new_raw: str) -> None:
        """
        Replace the raw sub-value of a field for one sample.

        A truncated sample column is padded with the missing token up to
        the key being set.

        Raises:
            FieldAbsentForRecord: If the FORMAT column does not list field_id
            IndexError: If sample_index is out of range
        """
        index = self.format_index(field_id)
        if index is None:
            raise FieldAbsentForRecord(field_id, self.line_number)
        values = self.samples[sample_index]
        while len(values) <= index:
            values.append(MISSING)
        values[index] = new_raw

    def copy(self) -> "Record":
        """Copy with independent sample lists."""
        return Record(
            self.chrom, self.pos, self.id, self.ref, self.alt,
            self.qual, self.filter, self.info,
            format_keys=list(self.format_keys) if self.format_keys is not None else None,
            samples=[list(values) for values in self.samples],
            eol=self.eol,
            line_number=self.line_number,
            _format_raw=self._format_raw,
        )

    def fixed_columns(self) -> List[str]:
        return [self.chrom, self.pos, self.id, self.ref, self.alt,
                self.qual, self.filter, self.info]

    def serialize(self) -> str:
        """Render the line without its terminator."""
        columns = self.fixed_columns()
        if self.format_keys is not None:
            if self._format_raw is not None:
                columns.append(self._format_raw)
            else:
                columns.append(SUBFIELD_SEP.join(self.format_keys) or MISSING)
            columns.extend(SUBFIELD_SEP.join(values) for values in self.samples)
        return COLUMN_SEP.join(columns)
