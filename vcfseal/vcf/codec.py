"""
Field Codec

Typed view of FORMAT/INFO sub-values.

    parse("0.03,0.97,0", "G", FieldType.FLOAT)
        -> ListValue([Scalar(0.03), Scalar(0.97), Scalar(0.0)])
    parse(".", "G", FieldType.FLOAT)
        -> MISSING_VALUE

Parsed scalars remember their source text, so render(parse(x)) == x for
every grammar-legal x. Values built in code are rendered in their
shortest round-trippable form.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Union

from ..errors import TypeMismatch
from .header import FieldType


MISSING = "."
LIST_SEP = ","

INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
FLOAT_PATTERN = re.compile(
    r"^[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf|infinity|nan)$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Missing:
    """The missing token `.`."""

    def __repr__(self) -> str:
        return "Missing"


MISSING_VALUE = Missing()


@dataclass(frozen=True)
class Scalar:
    """A single typed value; text holds the source spelling when parsed."""
    value: Union[int, float, str, bool]
    text: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class ListValue:
    """Comma-delimited values; an empty list is not the same as Missing."""
    items: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))


SemanticValue = Union[Missing, Scalar, ListValue]


def is_multi_valued(number: str) -> bool:
    """True when a Number declaration allows more than one value."""
    if number in ("A", "R", "G", "."):
        return True
    return number.isdigit() and int(number) > 1


def lex_scalar(raw: str, field_type: FieldType) -> Scalar:
    """
    Lex one non-missing element as field_type.

    Raises:
        TypeMismatch: If raw is not a legal value of field_type
    """
    if field_type is FieldType.INTEGER:
        if not INTEGER_PATTERN.match(raw):
            raise TypeMismatch(raw, field_type.value)
        return Scalar(int(raw), raw)
    if field_type is FieldType.FLOAT:
        if not FLOAT_PATTERN.match(raw):
            raise TypeMismatch(raw, field_type.value)
        return Scalar(float(raw), raw)
    if field_type is FieldType.CHARACTER:
        if len(raw) != 1:
            raise TypeMismatch(raw, field_type.value)
        return Scalar(raw, raw)
    if field_type is FieldType.FLAG:
        if raw:
            raise TypeMismatch(raw, field_type.value)
        return Scalar(True, raw)
    return Scalar(raw, raw)


def parse(raw: str, number: str, field_type: Union[FieldType, str]) -> SemanticValue:
    """
    Parse a raw sub-value by its declared Number and Type.

    Args:
        raw: The sub-value text
        number: Declared Number (integer, A, R, G or .)
        field_type: Declared Type

    Returns:
        MISSING_VALUE, a Scalar, or a ListValue

    Raises:
        TypeMismatch: If an element does not lex as field_type
    """
    field_type = FieldType.parse(field_type)
    if raw == MISSING:
        return MISSING_VALUE
    if field_type is FieldType.FLAG:
        return lex_scalar(raw, field_type)
    if not is_multi_valued(number):
        return lex_scalar(raw, field_type)
    if raw == "":
        return ListValue(())

    items: List[Union[Missing, Scalar]] = []
    for element in raw.split(LIST_SEP):
        if element == MISSING:
            items.append(MISSING_VALUE)
        else:
            items.append(lex_scalar(element, field_type))
    return ListValue(items)


def _render_number(value: Union[int, float]) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Inf" if value > 0 else "-Inf"
    text = repr(value)
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _render_scalar(scalar: Scalar) -> str:
    if scalar.text is not None:
        return scalar.text
    if isinstance(scalar.value, (int, float)):
        return _render_number(scalar.value)
    return str(scalar.value)


def render(value: SemanticValue) -> str:
    """Render a semantic value back to its raw sub-value text."""
    if isinstance(value, Missing):
        return MISSING
    if isinstance(value, Scalar):
        return _render_scalar(value)
    return LIST_SEP.join(
        MISSING if isinstance(item, Missing) else _render_scalar(item)
        for item in value.items
    )


def lexes_as(raw: str, field_type: Union[FieldType, str]) -> bool:
    """
    True when every comma element of raw is `.` or a legal field_type value.

    Used to make sure a ciphertext token cannot be mistaken for plaintext
    of the field's original type.
    """
    field_type = FieldType.parse(field_type)
    if field_type is FieldType.STRING:
        return True
    try:
        parse(raw, ".", field_type)
    except TypeMismatch:
        return False
    return True
