"""
Original-type side channel.

The encryption pass rewrites every targeted field's Type to String, so
the original Types must travel separately for decryption:

    {"version": 1, "types": {"GP": "Float", "PL": "Integer"}}
"""

import json
import os
import tempfile
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, TextIO, Union

from ..vcf.header import FieldType


TYPE_MAP_VERSION = 1


def dumps_type_map(mapping: Mapping[str, Union[FieldType, str]]) -> str:
    """Serialize a {field_id: original Type} mapping to JSON."""
    types = {fid: FieldType.parse(t).value for fid, t in sorted(mapping.items())}
    return json.dumps({'version': TYPE_MAP_VERSION, 'types': types}, indent=2)


def loads_type_map(data: str) -> Dict[str, FieldType]:
    """
    Parse a type map produced by dumps_type_map.

    Raises:
        ValueError: On an unknown version or Type value
    """
    document = json.loads(data)
    if not isinstance(document, dict) or document.get('version') != TYPE_MAP_VERSION:
        raise ValueError("Unsupported type map format or version")
    types = document.get('types')
    if not isinstance(types, dict):
        raise ValueError("Type map has no `types` object")
    return {fid: FieldType.parse(t) for fid, t in types.items()}


def save_type_map(path: str, mapping: Mapping[str, Union[FieldType, str]]) -> None:
    with atomic_output(path) as f:
        f.write(dumps_type_map(mapping))


def load_type_map(path: str) -> Dict[str, FieldType]:
    with open(path, 'r', encoding='utf-8') as f:
        return loads_type_map(f.read())


@contextmanager
def atomic_output(path: str) -> Iterator[TextIO]:
    """
    Open a text file for writing that only appears at path on success.

    Writes go to a temporary file in the same directory, which replaces
    path when the block exits cleanly and is removed otherwise.
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".vcfseal-", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline="") as f:
            yield f
        os.replace(tmp_path, path)
    except BaseException:
        os.remove(tmp_path)
        raise
