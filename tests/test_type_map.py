"""
Unit tests for the original-type side channel and atomic file output.
"""

import json
import os
import tempfile

import pytest

from vcfseal.transform.type_map import (
    atomic_output, dumps_type_map, load_type_map, loads_type_map, save_type_map,
)
from vcfseal.vcf.header import FieldType


class TestTypeMap:
    """Tests for type map serialization."""

    def test_dumps_format(self):
        """The document is versioned and sorted."""
        document = json.loads(dumps_type_map({"PL": FieldType.INTEGER, "GP": "Float"}))
        assert document == {'version': 1, 'types': {'GP': 'Float', 'PL': 'Integer'}}
        assert list(document['types']) == ["GP", "PL"]

    def test_loads(self):
        """Types load as FieldType members."""
        mapping = loads_type_map('{"version": 1, "types": {"GP": "Float"}}')
        assert mapping == {"GP": FieldType.FLOAT}

    def test_unsupported_version(self):
        """Unknown versions are rejected."""
        with pytest.raises(ValueError):
            loads_type_map('{"version": 2, "types": {}}')
        with pytest.raises(ValueError):
            loads_type_map('{"version": 1}')

    def test_unknown_type(self):
        """Unknown Type names are rejected."""
        with pytest.raises(ValueError):
            loads_type_map('{"version": 1, "types": {"GP": "Double"}}')

    def test_save_and_load(self):
        """Saved maps load back unchanged."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "types.json")
            save_type_map(path, {"GP": "Float", "GT": "String"})
            assert load_type_map(path) == {"GP": FieldType.FLOAT, "GT": FieldType.STRING}


class TestAtomicOutput:
    """Tests for write-then-rename output files."""

    def test_file_appears_on_success(self):
        """The target holds the written text after the block."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "out.vcf")
            with atomic_output(path) as f:
                f.write("a\r\nb\n")
                assert not os.path.exists(path)
            with open(path, newline="") as f:
                assert f.read() == "a\r\nb\n"

    def test_existing_file_kept_on_failure(self):
        """A failed write leaves the previous file and no temporary files."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "out.vcf")
            with open(path, 'w') as f:
                f.write("old")

            with pytest.raises(RuntimeError):
                with atomic_output(path) as f:
                    f.write("new")
                    raise RuntimeError("boom")

            assert os.listdir(tmpdir) == ["out.vcf"]
            with open(path) as f:
                assert f.read() == "old"
