"""
Error Taxonomy

Every failure raised by vcfseal derives from VcfSealError.

Header stage (abort before any output):
- MalformedHeaderLine, AbortedAtHeader
- FieldNotFound / UnknownTargetField

Record stage:
- RecordParseError, FieldAbsentForRecord, TypeMismatch
- UnsafeCiphertextEncoding (always fatal)
- CryptoProviderError, DecryptionFailed (policy dependent)
"""

from typing import Iterable, Optional


class VcfSealError(Exception):
    """Base class for all vcfseal errors."""
    pass


class MalformedHeaderLine(VcfSealError, ValueError):
    """Raised when a meta-information or column line cannot be parsed."""

    def __init__(self, message: str, line_number: Optional[int] = None,
                 line: Optional[str] = None):
        self.line_number = line_number
        self.line = line
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class AbortedAtHeader(VcfSealError):
    """Raised by the engines when the header could not be loaded."""

    def __init__(self, cause: MalformedHeaderLine):
        self.line_number = cause.line_number
        self.line = cause.line
        super().__init__(f"aborted while reading header: {cause}")


class FieldNotFound(VcfSealError, LookupError):
    """Raised when a header has no declaration for a field ID."""

    def __init__(self, field_id: str, category: str = "FORMAT"):
        self.field_id = field_id
        self.category = category
        super().__init__(f"no {category} declaration for `{field_id}`")


class UnknownTargetField(FieldNotFound):
    """Raised when targeted field IDs are not declared as FORMAT fields."""

    def __init__(self, field_ids: Iterable[str]):
        self.field_ids = sorted(field_ids)
        VcfSealError.__init__(
            self,
            f"target fields not declared in FORMAT header lines: "
            f"{', '.join(self.field_ids)}"
        )
        self.field_id = self.field_ids[0] if self.field_ids else ""
        self.category = "FORMAT"


class FieldAbsentForRecord(VcfSealError, LookupError):
    """Raised when a record's FORMAT column does not list a field."""

    def __init__(self, field_id: str, line_number: Optional[int] = None):
        self.field_id = field_id
        self.line_number = line_number
        super().__init__(f"field `{field_id}` is not in this record's FORMAT keys")


class RecordParseError(VcfSealError, ValueError):
    """Raised when a data line cannot be split into columns."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class TypeMismatch(VcfSealError, ValueError):
    """Raised when a value does not lex as its declared Type."""

    def __init__(self, raw: str, type_name: str):
        self.raw = raw
        self.type_name = type_name
        super().__init__(f"`{raw}` is not a valid {type_name} value")


class CryptoProviderError(VcfSealError):
    """
    Raised by crypto providers when encryption or decryption fails.

    The engines re-raise provider errors with the record position attached.
    """

    def __init__(self, message: str, field_id: Optional[str] = None,
                 sample_index: Optional[int] = None,
                 line_number: Optional[int] = None):
        self.field_id = field_id
        self.sample_index = sample_index
        self.line_number = line_number
        if field_id is not None:
            message = (
                f"line {line_number}, sample {sample_index}, field `{field_id}`: {message}"
            )
        super().__init__(message)


class UnsafeCiphertextEncoding(VcfSealError):
    """Raised when a provider token cannot be embedded in a VCF sample column."""

    def __init__(self, field_id: str, reason: str):
        self.field_id = field_id
        self.reason = reason
        super().__init__(
            f"ciphertext token for `{field_id}` is not grammar-safe: {reason}"
        )


class DecryptionFailed(VcfSealError):
    """Raised (strict mode) or collected (lenient mode) per failing sub-value."""

    def __init__(self, field_id: str, line_number: Optional[int],
                 sample_index: int, raw: str, reason: str):
        self.field_id = field_id
        self.line_number = line_number
        self.sample_index = sample_index
        self.raw = raw
        self.reason = reason
        super().__init__(
            f"line {line_number}, sample {sample_index}, field `{field_id}`: "
            f"decryption failed ({reason})"
        )
