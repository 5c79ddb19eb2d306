# VCF Format Module
"""
VCF text model:
- Header meta-lines and FORMAT/INFO declarations (header.py)
- Data lines and per-sample sub-values (record.py)
- Typed sub-value parsing and rendering (codec.py)
- Streaming reader and writer (stream.py)
"""

from .header import (
    AttributeMap,
    FieldDeclaration,
    FieldType,
    Header,
    HeaderLine,
    parse_header,
)

from .record import Record, MISSING

from .stream import VcfReader, VcfWriter

__all__ = [
    'AttributeMap',
    'FieldDeclaration',
    'FieldType',
    'Header',
    'HeaderLine',
    'parse_header',
    'Record',
    'MISSING',
    'VcfReader',
    'VcfWriter',
]
