"""
Streaming VCF reader and writer.

The reader parses the header eagerly and records lazily, one line at a
time, so memory use does not grow with the number of records.

Example:
    >>> with open("calls.vcf", newline="") as f:
    ...     reader = VcfReader(f)
    ...     for record in reader:
    ...         print(record.chrom, record.pos)
"""

from typing import Iterable, Iterator, Optional, TextIO

from ..errors import MalformedHeaderLine, RecordParseError
from .header import Header, parse_header, split_eol
from .record import Record


class VcfReader:
    """Reads a header, then yields Records."""

    def __init__(self, stream: TextIO):
        """
        Read the header from a text stream.

        Open files with newline="" so original line terminators survive.

        Raises:
            MalformedHeaderLine: If the header cannot be parsed
        """
        self._lines = _LineCounter(stream)
        self.header: Header = parse_header(self._lines)
        self._lines.in_header = False

    @property
    def line_number(self) -> int:
        return self._lines.count

    def iter_lines(self) -> Iterator[tuple]:
        """Yield (line_number, content, eol) for each remaining data line."""
        for raw in self._lines:
            content, eol = split_eol(raw)
            yield self._lines.count, content, eol

    def __iter__(self) -> Iterator[Record]:
        column_count = self.header.expected_columns()
        for line_number, content, eol in self.iter_lines():
            yield Record.parse(content, column_count, line_number, eol)


class _LineCounter:
    """
    Iterator over stream lines that remembers how many were read.

    A stream opened with strict UTF-8 decoding fails inside readline();
    the failure is reported at the line being read. Decoding happens in
    chunks, so the bad byte may sit on a later line.
    """

    def __init__(self, stream: TextIO):
        self._stream = stream
        self.count = 0
        self.in_header = True

    def __iter__(self) -> "_LineCounter":
        return self

    def __next__(self) -> str:
        try:
            line = self._stream.readline()
        except UnicodeDecodeError as e:
            message = f"input is not valid UTF-8 ({e.reason})"
            if self.in_header:
                raise MalformedHeaderLine(message, self.count + 1) from e
            raise RecordParseError(message, self.count + 1) from e
        if not line:
            raise StopIteration
        self.count += 1
        return line


class VcfWriter:
    """Writes a header followed by records, keeping line terminators."""

    def __init__(self, stream: TextIO, header: Optional[Header] = None):
        self._stream = stream
        if header is not None:
            self.write_header(header)

    def write_header(self, header: Header) -> None:
        self._stream.write(header.serialize())

    def write_record(self, record: Record) -> None:
        self._stream.write(record.serialize() + record.eol)

    def write_line(self, line: str) -> None:
        """Write an already serialized line, terminator included."""
        self._stream.write(line)

    def write_lines(self, lines: Iterable[str]) -> None:
        """Write already serialized lines, terminators included."""
        for line in lines:
            self._stream.write(line)
