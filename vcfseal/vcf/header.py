"""
VCF Header Model

Parses and re-serializes the meta-information lines and the #CHROM
column line of a VCF file.

Structured lines:
    ##FORMAT=<ID=GP,Number=G,Type=Float,Description="Genotype probabilities">
    ##INFO=<ID=DP,Number=1,Type=Integer,Description="Total depth">
    ##META=<ID=Assay,Type=String,Number=.,Values=[WholeGenome, Exome]>

Unstructured lines:
    ##fileformat=VCFv4.3
    ##reference=1000GenomesPilot-NCBI36

Unmodified lines are re-emitted byte-for-byte from their original text.
Lines whose attributes were changed are rebuilt from the attribute map,
keeping attribute order and the original quoting of each value.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from ..errors import FieldNotFound, MalformedHeaderLine


# Constants
FIXED_COLUMNS = ("CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO")
FORMAT_COLUMN = "FORMAT"
FIELD_CATEGORIES = ("FORMAT", "INFO")

STYLE_PLAIN = "plain"
STYLE_QUOTED = "quoted"
STYLE_BRACKET = "bracket"

# Characters that force a value to be quoted on re-serialization
RESERVED_VALUE_CHARS = frozenset(',<>="') | frozenset(" \t")

NUMBER_PATTERN = re.compile(r"^(\d+|[ARG.])$")

# Lone surrogates left by errors="surrogateescape" stand for bytes that
# were not valid UTF-8
UNDECODABLE_PATTERN = re.compile("[\udc80-\udcff]")


class FieldType(Enum):
    """Value types a FORMAT or INFO field may declare."""
    INTEGER = "Integer"
    FLOAT = "Float"
    CHARACTER = "Character"
    STRING = "String"
    FLAG = "Flag"

    @classmethod
    def parse(cls, value: Union[str, "FieldType"]) -> "FieldType":
        """Look up a type by its header spelling."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"invalid Type value `{value}`")

    def __str__(self) -> str:
        return self.value


class AttributeMap:
    """
    Ordered key/value mapping for header attributes.

    Pairs live in a list so insertion order is kept; a dict index gives
    O(1) lookup by key. Re-inserting an existing key updates its value
    in place.
    """

    def __init__(self, items: Iterable[Tuple[str, str]] = ()):
        self._items: List[List[str]] = []
        self._index: Dict[str, int] = {}
        for key, value in items:
            self[key] = value

    def __getitem__(self, key: str) -> str:
        return self._items[self._index[key]][1]

    def __setitem__(self, key: str, value: str) -> None:
        if key in self._index:
            self._items[self._index[key]][1] = value
        else:
            self._index[key] = len(self._items)
            self._items.append([key, value])

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AttributeMap):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"AttributeMap({self.items()!r})"

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        if key in self._index:
            return self[key]
        return default

    def items(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, value in self._items]

    def keys(self) -> List[str]:
        return [key for key, _ in self._items]


def parse_structured_payload(payload: str) -> Tuple[AttributeMap, Dict[str, str]]:
    """
    Parse an angle-bracket attribute list.

    Quoted values ("...") may contain commas, equals signs and escaped
    quotes; bracketed values ([...]) may contain commas. Escapes are kept
    verbatim so the value re-serializes unchanged.

    Args:
        payload: Text after `##KEY=`, including the angle brackets

    Returns:
        Tuple of (attributes, quoting style per attribute)

    Raises:
        ValueError: On unbalanced brackets or quotes, empty keys or values
    """
    if not (payload.startswith("<") and payload.endswith(">")):
        raise ValueError(f"invalid header payload `{payload}` (unbalanced angle brackets)")

    body = payload[1:-1]
    if not body:
        raise ValueError("invalid header payload (empty)")

    attributes = AttributeMap()
    styles: Dict[str, str] = {}
    pos = 0
    length = len(body)

    while pos < length:
        eq = body.find("=", pos)
        if eq == -1:
            raise ValueError(f"invalid header payload `{body}` (attribute without `=`)")
        key = body[pos:eq]
        if not key:
            raise ValueError(f"invalid header payload `{body}` (empty key)")
        if "," in key or '"' in key:
            raise ValueError(f"invalid header payload `{body}` (malformed key `{key}`)")

        start = eq + 1
        if start < length and body[start] in '"[':
            closing = '"' if body[start] == '"' else "]"
            style = STYLE_QUOTED if closing == '"' else STYLE_BRACKET
            end = start + 1
            escaped = False
            while end < length:
                ch = body[end]
                if closing == '"' and ch == "\\" and not escaped:
                    escaped = True
                elif ch == closing and not escaped:
                    break
                else:
                    escaped = False
                end += 1
            else:
                kind = "quote" if closing == '"' else "square bracket"
                raise ValueError(f"invalid header payload `{body}` (unbalanced {kind})")

            value = body[start + 1:end]
            after = end + 1
            if after < length and body[after] != ",":
                raise ValueError(
                    f"invalid header payload `{body}` "
                    f"(non `,` character found after closing {closing})"
                )
            pos = after + 1
        else:
            end = body.find(",", start)
            if end == -1:
                end = length
            value = body[start:end]
            if not value:
                raise ValueError(f"invalid header payload `{body}` (empty value)")
            if '"' in value:
                raise ValueError(f"invalid header payload `{body}` (invalid character `\"` found)")
            style = STYLE_PLAIN
            pos = end + 1

        attributes[key] = value
        styles[key] = style

    return attributes, styles


def _format_attribute(key: str, value: str, style: str) -> str:
    if style == STYLE_QUOTED:
        return f'{key}="{value}"'
    if style == STYLE_BRACKET:
        return f"{key}=[{value}]"
    if any(ch in RESERVED_VALUE_CHARS for ch in value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'{key}="{escaped}"'
    return f"{key}={value}"


@dataclass
class HeaderLine:
    """One `##` meta-information line."""
    key: str
    value: str
    attributes: Optional[AttributeMap] = None
    styles: Dict[str, str] = field(default_factory=dict)
    raw: Optional[str] = None
    eol: str = "\n"
    dirty: bool = False

    @classmethod
    def parse(cls, line: str, eol: str = "\n",
              line_number: Optional[int] = None) -> "HeaderLine":
        """
        Parse a meta-information line (without its terminator).

        Raises:
            MalformedHeaderLine: If the line is not `##KEY=VALUE` shaped
                or its attribute list is malformed
        """
        if not line.startswith("##"):
            raise MalformedHeaderLine("header lines must start with `##`", line_number, line)
        eq = line.find("=")
        if eq == -1:
            raise MalformedHeaderLine(
                "header lines must contain an `=` sign", line_number, line
            )

        key = line[2:eq]
        value = line[eq + 1:]
        if not key:
            raise MalformedHeaderLine("empty header key", line_number, line)

        attributes = None
        styles: Dict[str, str] = {}
        if value.startswith("<") or (value.endswith(">") and key in FIELD_CATEGORIES):
            try:
                attributes, styles = parse_structured_payload(value)
            except ValueError as e:
                raise MalformedHeaderLine(str(e), line_number, line) from e
        elif key in FIELD_CATEGORIES:
            raise MalformedHeaderLine(
                f"{key} lines must carry an attribute list", line_number, line
            )

        return cls(key=key, value=value, attributes=attributes, styles=styles,
                   raw=line, eol=eol)

    @property
    def is_structured(self) -> bool:
        return self.attributes is not None

    @property
    def id(self) -> Optional[str]:
        if self.attributes is None:
            return None
        return self.attributes.get("ID")

    def set_attribute(self, key: str, value: str) -> bool:
        """
        Set an attribute value, marking the line for rebuild.

        Returns:
            True if the stored value changed
        """
        if self.attributes is None:
            raise ValueError(f"`##{self.key}` is not a structured header line")
        if self.attributes.get(key) == value:
            return False
        self.attributes[key] = value
        self.styles.setdefault(key, STYLE_PLAIN)
        self.dirty = True
        return True

    def serialize(self) -> str:
        """Render the line without its terminator."""
        if not self.dirty and self.raw is not None:
            return self.raw
        if self.attributes is None:
            return f"##{self.key}={self.value}"

        keys = self.attributes.keys()
        if "ID" in keys:
            keys.remove("ID")
            keys.insert(0, "ID")
        parts = [
            _format_attribute(k, self.attributes[k], self.styles.get(k, STYLE_PLAIN))
            for k in keys
        ]
        return f"##{self.key}=<{','.join(parts)}>"


class FieldDeclaration:
    """
    View of a FORMAT or INFO declaration.

    Reads go straight to the underlying HeaderLine, so a Type change made
    through Header.set_field_type is visible immediately.
    """

    def __init__(self, line: HeaderLine):
        self._line = line

    @property
    def category(self) -> str:
        return self._line.key

    @property
    def id(self) -> str:
        return self._line.attributes["ID"]

    @property
    def number(self) -> str:
        return self._line.attributes.get("Number", ".")

    @property
    def type(self) -> FieldType:
        return FieldType.parse(self._line.attributes.get("Type", FieldType.STRING.value))

    @property
    def description(self) -> str:
        return self._line.attributes.get("Description", "")

    @property
    def line(self) -> HeaderLine:
        return self._line

    def __repr__(self) -> str:
        return (
            f"FieldDeclaration({self.category} ID={self.id}, Number={self.number}, "
            f"Type={self.type.value})"
        )


def _validate_declaration(line: HeaderLine, line_number: Optional[int]) -> None:
    attributes = line.attributes
    if "ID" not in attributes:
        raise MalformedHeaderLine(
            f"{line.key} declaration is missing required attribute `ID`",
            line_number, line.raw
        )
    number = attributes.get("Number", ".")
    if not NUMBER_PATTERN.match(number):
        raise MalformedHeaderLine(f"invalid Number value `{number}`", line_number, line.raw)
    try:
        field_type = FieldType.parse(attributes.get("Type", FieldType.STRING.value))
    except ValueError as e:
        raise MalformedHeaderLine(str(e), line_number, line.raw) from e
    if line.key == "FORMAT" and field_type is FieldType.FLAG:
        raise MalformedHeaderLine(
            "FORMAT fields cannot declare Type=Flag", line_number, line.raw
        )


def parse_column_names(line: str, line_number: Optional[int] = None) -> List[str]:
    """
    Parse the #CHROM line into its column names.

    Example:
        #CHROM  POS  ID  REF  ALT  QUAL  FILTER  INFO  FORMAT  NA00001  NA00002

    Raises:
        MalformedHeaderLine: On missing fixed columns, a misplaced FORMAT
            column, or repeated sample names
    """
    columns = line[1:].split("\t")
    if tuple(columns[:len(FIXED_COLUMNS)]) != FIXED_COLUMNS:
        raise MalformedHeaderLine(
            f"columns line should start with `#{chr(9).join(FIXED_COLUMNS)}`",
            line_number, line
        )

    extra = columns[len(FIXED_COLUMNS):]
    if extra:
        if extra[0] != FORMAT_COLUMN:
            raise MalformedHeaderLine(
                f"unexpected column name `{extra[0]}` after `INFO`", line_number, line
            )
        samples = extra[1:]
        if len(set(samples)) != len(samples):
            raise MalformedHeaderLine("sample column names must be unique", line_number, line)
    return columns


class Header:
    """
    Parsed VCF header.

    Example:
        >>> header = Header.parse(text)
        >>> header.get_field_declaration("GP").type
        <FieldType.FLOAT: 'Float'>
        >>> header.set_field_type("GP", FieldType.STRING)
        True
    """

    def __init__(self, lines: List[HeaderLine], columns: List[str],
                 column_eol: str = "\n"):
        self.lines = lines
        self.columns = columns
        self.column_eol = column_eol
        self._declarations: Dict[Tuple[str, str], HeaderLine] = {}
        for line in lines:
            if line.key in FIELD_CATEGORIES:
                self._declarations[(line.key, line.id)] = line

    @classmethod
    def parse(cls, text: str) -> "Header":
        """Parse header text (meta lines plus the #CHROM line)."""
        return parse_header(iter(_split_lines(text)))

    @property
    def fileformat(self) -> Optional[str]:
        for line in self.lines:
            if line.key == "fileformat":
                return line.value
        return None

    @property
    def has_format_column(self) -> bool:
        return len(self.columns) > len(FIXED_COLUMNS)

    @property
    def sample_names(self) -> List[str]:
        return self.columns[len(FIXED_COLUMNS) + 1:]

    @property
    def format_ids(self) -> List[str]:
        return [fid for cat, fid in self._declarations if cat == "FORMAT"]

    @property
    def info_ids(self) -> List[str]:
        return [fid for cat, fid in self._declarations if cat == "INFO"]

    def expected_columns(self) -> int:
        """Number of tab-separated columns each data line must have."""
        return len(self.columns)

    def has_field(self, field_id: str, category: str = "FORMAT") -> bool:
        return (category, field_id) in self._declarations

    def get_field_declaration(self, field_id: str,
                              category: str = "FORMAT") -> FieldDeclaration:
        """
        Look up a FORMAT (default) or INFO declaration.

        Raises:
            FieldNotFound: If no such declaration exists
        """
        line = self._declarations.get((category, field_id))
        if line is None:
            raise FieldNotFound(field_id, category)
        return FieldDeclaration(line)

    def set_field_type(self, field_id: str, new_type: Union[FieldType, str],
                       category: str = "FORMAT") -> bool:
        """
        Change the declared Type of a field.

        Idempotent: setting the type a field already has is a no-op.
        Number and Description are left untouched.

        Returns:
            True if the header changed, False if it already had new_type

        Raises:
            FieldNotFound: If no such declaration exists
        """
        declaration = self.get_field_declaration(field_id, category)
        new_type = FieldType.parse(new_type)
        if declaration.type is new_type:
            return False
        return declaration.line.set_attribute("Type", new_type.value)

    def column_line(self) -> str:
        return "#" + "\t".join(self.columns)

    def serialize(self) -> str:
        """Re-emit the header in original order, with original line terminators."""
        parts = [line.serialize() + line.eol for line in self.lines]
        parts.append(self.column_line() + self.column_eol)
        return "".join(parts)


def _split_lines(text: str) -> List[str]:
    # Only \n, \r\n and \r terminate lines; keep the terminators
    return re.findall(r"[^\r\n]*(?:\r\n|\r|\n)|[^\r\n]+$", text)


def split_eol(line: str) -> Tuple[str, str]:
    """Split a line into (content, terminator)."""
    content = line.rstrip("\r\n")
    return content, line[len(content):]


def parse_header(lines: Iterator[str]) -> Header:
    """
    Consume header lines from an iterator, stopping after the #CHROM line.

    The iterator is left positioned at the first data line, so callers can
    keep reading records from it.

    Raises:
        MalformedHeaderLine: On any malformed line, duplicate declaration,
            or a missing #CHROM line
    """
    header_lines: List[HeaderLine] = []
    seen = set()
    line_number = 0

    for raw in lines:
        line_number += 1
        content, eol = split_eol(raw)
        if UNDECODABLE_PATTERN.search(content):
            raise MalformedHeaderLine("line is not valid UTF-8", line_number, content)

        if content.startswith("##"):
            header_line = HeaderLine.parse(content, eol, line_number)
            if header_line.key in FIELD_CATEGORIES:
                _validate_declaration(header_line, line_number)
                key = (header_line.key, header_line.id)
                if key in seen:
                    raise MalformedHeaderLine(
                        f"duplicate {header_line.key} declaration for `{header_line.id}`",
                        line_number, content
                    )
                seen.add(key)
            header_lines.append(header_line)
        elif content.startswith("#"):
            columns = parse_column_names(content, line_number)
            return Header(header_lines, columns, eol)
        else:
            raise MalformedHeaderLine(
                "data line found before the #CHROM column line", line_number, content
            )

    raise MalformedHeaderLine("missing #CHROM column line", line_number or None)
