"""
Unit tests for the VCF Header Model.

Tests:
- Attribute list parsing (quotes, brackets, escapes)
- Malformed header lines
- Field declarations and Type changes
- Byte-for-byte re-serialization
"""

import pytest

from vcfseal.errors import FieldNotFound, MalformedHeaderLine
from vcfseal.vcf.header import (
    AttributeMap, FieldType, Header, HeaderLine,
    parse_column_names, parse_structured_payload,
)
from tests.vcf_samples import HEADER_TEXT


class TestAttributeMap:
    """Tests for the ordered attribute map."""

    def test_keeps_insertion_order(self):
        """Keys come back in insertion order."""
        attrs = AttributeMap([("ID", "GT"), ("Number", "1"), ("Type", "String")])
        assert attrs.keys() == ["ID", "Number", "Type"]

    def test_update_keeps_position(self):
        """Updating a key keeps its position."""
        attrs = AttributeMap([("ID", "GT"), ("Type", "Float"), ("Description", "x")])
        attrs["Type"] = "String"
        assert attrs.items() == [("ID", "GT"), ("Type", "String"), ("Description", "x")]

    def test_lookup(self):
        """get and membership work by key."""
        attrs = AttributeMap([("ID", "GT")])
        assert "ID" in attrs
        assert attrs.get("Type") is None
        assert attrs.get("Type", "String") == "String"
        assert len(attrs) == 1


class TestPayloadParsing:
    """Tests for the quote-aware attribute list parser."""

    def test_simple_payload(self):
        """Plain key=value pairs parse in order."""
        attrs, styles = parse_structured_payload("<ID=TumourSample,Original=GermlineID>")
        assert attrs.items() == [("ID", "TumourSample"), ("Original", "GermlineID")]
        assert styles == {"ID": "plain", "Original": "plain"}

    def test_quoted_value_with_delimiters(self):
        """Quoted values may contain commas and equals signs."""
        attrs, styles = parse_structured_payload(
            '<ID=X,Description="a, b=c <d>">'
        )
        assert attrs["Description"] == "a, b=c <d>"
        assert styles["Description"] == "quoted"

    def test_escaped_quote_kept_verbatim(self):
        """Escaped quotes stay escaped in the stored value."""
        attrs, _ = parse_structured_payload(
            '<ID=SVTYPE,Description="Type of \\"structural\\" variant">'
        )
        assert attrs["Description"] == 'Type of \\"structural\\" variant'

    def test_bracketed_value(self):
        """Square-bracketed values may contain commas."""
        attrs, styles = parse_structured_payload(
            "<ID=Assay,Type=String,Number=.,Values=[WholeGenome, Exome]>"
        )
        assert attrs["Values"] == "WholeGenome, Exome"
        assert styles["Values"] == "bracket"

    def test_empty_payload_rejected(self):
        """An empty attribute list is invalid."""
        with pytest.raises(ValueError, match="empty"):
            parse_structured_payload("<>")

    def test_unbalanced_brackets_rejected(self):
        """A missing closing angle bracket is invalid."""
        with pytest.raises(ValueError, match="unbalanced angle brackets"):
            parse_structured_payload("<ID=GT,Number=1")

    def test_unbalanced_quote_rejected(self):
        """An unterminated quote is invalid."""
        with pytest.raises(ValueError, match="unbalanced quote"):
            parse_structured_payload('<ID=SVTYPE,Description="Type of structural variant>')

    def test_empty_key_rejected(self):
        """An attribute needs a key."""
        with pytest.raises(ValueError, match="empty key"):
            parse_structured_payload("<=TumourSample>")

    def test_empty_value_rejected(self):
        """An unquoted attribute needs a value."""
        with pytest.raises(ValueError, match="empty value"):
            parse_structured_payload("<ID=,Original=GermlineID>")

    def test_quote_inside_value_rejected(self):
        """A quote may only open a value."""
        with pytest.raises(ValueError, match="invalid character"):
            parse_structured_payload('<ID=Tumour"Sample>')

    def test_text_after_closing_quote_rejected(self):
        """Only a comma may follow a closing quote."""
        with pytest.raises(ValueError, match="after closing"):
            parse_structured_payload('<ID=X,Description="abc"def>')


class TestHeaderLine:
    """Tests for single meta-information lines."""

    def test_unstructured_line(self):
        """##key=value lines keep their raw value."""
        line = HeaderLine.parse("##reference=1000GenomesPilot-NCBI36")
        assert line.key == "reference"
        assert line.value == "1000GenomesPilot-NCBI36"
        assert not line.is_structured

    def test_structured_line(self):
        """Angle-bracket lines expose their attributes."""
        line = HeaderLine.parse(
            '##FORMAT=<ID=CNQ,Number=1,Type=Float,Description="Copy number quality">'
        )
        assert line.is_structured
        assert line.id == "CNQ"
        assert line.attributes["Type"] == "Float"

    def test_missing_equals_rejected(self):
        """Meta lines need an `=`."""
        with pytest.raises(MalformedHeaderLine):
            HeaderLine.parse("##fileformat")

    def test_unmodified_line_reserializes_exactly(self):
        """Untouched lines come back byte-for-byte, even with odd spacing."""
        raw = '##contig=<ID=ctg1,length=81195210,species="Homo sapiens",URL=ftp://somewhere.org/assembly.fa>'
        assert HeaderLine.parse(raw).serialize() == raw

    def test_modified_line_rebuilt_with_id_first(self):
        """Rebuilt lines put ID first and keep quoting."""
        line = HeaderLine.parse(
            '##FORMAT=<Number=G,ID=GP,Type=Float,Description="Genotype probabilities">'
        )
        line.set_attribute("Type", "String")
        assert line.serialize() == (
            '##FORMAT=<ID=GP,Number=G,Type=String,Description="Genotype probabilities">'
        )

    def test_new_value_with_reserved_chars_is_quoted(self):
        """Values containing delimiters are quoted on rebuild."""
        line = HeaderLine.parse("##SAMPLE=<ID=S1,Assay=WGS>")
        line.set_attribute("Assay", "a,b")
        assert line.serialize() == '##SAMPLE=<ID=S1,Assay="a,b">'

    def test_unquoted_description_stays_unquoted(self):
        """Rebuilt lines quote only values that need it."""
        line = HeaderLine.parse("##FORMAT=<ID=GP,Number=G,Type=Float,Description=Probs>")
        line.set_attribute("Type", "String")
        assert line.serialize() == "##FORMAT=<ID=GP,Number=G,Type=String,Description=Probs>"


class TestColumnLine:
    """Tests for the #CHROM line."""

    def test_column_names(self):
        """Sample names follow the FORMAT column."""
        columns = parse_column_names(
            "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tNA00001\tNA00002"
        )
        assert columns[-2:] == ["NA00001", "NA00002"]

    def test_missing_format_column(self):
        """Sample columns require a FORMAT column."""
        with pytest.raises(MalformedHeaderLine):
            parse_column_names("#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tNA00001")

    def test_repeated_sample_name(self):
        """Sample names must be unique."""
        with pytest.raises(MalformedHeaderLine, match="unique"):
            parse_column_names(
                "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tNA1\tNA2\tNA1"
            )

    def test_wrong_fixed_columns(self):
        """The eight fixed columns are required, in order."""
        with pytest.raises(MalformedHeaderLine):
            parse_column_names("#CHROM\tPOS\tREF\tID\tALT\tQUAL\tFILTER\tINFO")


class TestHeader:
    """Tests for the full header model."""

    def test_parse_sample_header(self):
        """Version, samples and declarations are captured."""
        header = Header.parse(HEADER_TEXT)
        assert header.fileformat == "VCFv4.3"
        assert header.sample_names == ["NA00001", "NA00002"]
        assert header.format_ids == ["GT", "GQ", "GP", "PL", "DS"]
        assert header.info_ids == ["DP"]
        assert header.has_format_column

    def test_round_trip(self):
        """serialize(parse(text)) == text."""
        assert Header.parse(HEADER_TEXT).serialize() == HEADER_TEXT

    def test_round_trip_crlf(self):
        """CRLF terminators survive a round trip."""
        text = HEADER_TEXT.replace("\n", "\r\n")
        assert Header.parse(text).serialize() == text

    def test_get_field_declaration(self):
        """Declarations expose Number, Type and Description."""
        header = Header.parse(HEADER_TEXT)
        gp = header.get_field_declaration("GP")
        assert gp.id == "GP"
        assert gp.number == "G"
        assert gp.type is FieldType.FLOAT
        assert gp.description == "Genotype posterior probabilities"

    def test_info_declaration(self):
        """INFO declarations are looked up by category."""
        header = Header.parse(HEADER_TEXT)
        assert header.get_field_declaration("DP", "INFO").type is FieldType.INTEGER
        with pytest.raises(FieldNotFound):
            header.get_field_declaration("DP")

    def test_unknown_field(self):
        """Unknown IDs raise FieldNotFound."""
        header = Header.parse(HEADER_TEXT)
        with pytest.raises(FieldNotFound):
            header.get_field_declaration("XX")
        with pytest.raises(FieldNotFound):
            header.set_field_type("XX", FieldType.STRING)

    def test_set_field_type(self):
        """Changing a Type rewrites only that declaration."""
        header = Header.parse(HEADER_TEXT)
        assert header.set_field_type("GP", FieldType.STRING) is True

        text = header.serialize()
        assert '##FORMAT=<ID=GP,Number=G,Type=String,Description="Genotype posterior probabilities">' in text
        assert text.replace("Type=String,Description=\"Genotype posterior", "Type=Float,Description=\"Genotype posterior") == HEADER_TEXT

    def test_set_field_type_idempotent(self):
        """Setting the same Type N times equals setting it once."""
        once = Header.parse(HEADER_TEXT)
        once.set_field_type("PL", "String")

        many = Header.parse(HEADER_TEXT)
        results = [many.set_field_type("PL", FieldType.STRING) for _ in range(5)]

        assert results == [True, False, False, False, False]
        assert many.serialize() == once.serialize()

    def test_set_same_type_is_noop(self):
        """Setting a field's current Type changes nothing."""
        header = Header.parse(HEADER_TEXT)
        assert header.set_field_type("GT", FieldType.STRING) is False
        assert header.serialize() == HEADER_TEXT

    def test_missing_id_rejected(self):
        """FORMAT declarations need an ID."""
        text = '##FORMAT=<Number=1,Type=Integer,Description="x">\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n'
        with pytest.raises(MalformedHeaderLine, match="ID") as exc_info:
            Header.parse(text)
        assert exc_info.value.line_number == 1

    def test_invalid_type_rejected(self):
        """Unknown Type values are rejected."""
        text = '##FORMAT=<ID=X,Number=1,Type=Double,Description="x">\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n'
        with pytest.raises(MalformedHeaderLine, match="Type"):
            Header.parse(text)

    def test_invalid_number_rejected(self):
        """Number must be an integer or one of A, R, G, ."""
        text = '##INFO=<ID=X,Number=Z,Type=Integer,Description="x">\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n'
        with pytest.raises(MalformedHeaderLine, match="Number"):
            Header.parse(text)

    def test_duplicate_id_rejected(self):
        """IDs are unique within a category."""
        text = (
            '##FORMAT=<ID=GT,Number=1,Type=String,Description="a">\n'
            '##FORMAT=<ID=GT,Number=1,Type=String,Description="b">\n'
            '#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n'
        )
        with pytest.raises(MalformedHeaderLine, match="duplicate") as exc_info:
            Header.parse(text)
        assert exc_info.value.line_number == 2

    def test_same_id_in_different_categories(self):
        """INFO and FORMAT may share an ID."""
        text = (
            '##INFO=<ID=DP,Number=1,Type=Integer,Description="a">\n'
            '##FORMAT=<ID=DP,Number=1,Type=Integer,Description="b">\n'
            '#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tS1\n'
        )
        header = Header.parse(text)
        assert header.has_field("DP", "INFO")
        assert header.has_field("DP", "FORMAT")

    def test_missing_column_line(self):
        """A header without #CHROM is malformed."""
        with pytest.raises(MalformedHeaderLine, match="#CHROM"):
            Header.parse("##fileformat=VCFv4.3\n")

    def test_data_before_column_line(self):
        """Data lines cannot appear inside the header."""
        with pytest.raises(MalformedHeaderLine):
            Header.parse("##fileformat=VCFv4.3\n20\t1\t.\tA\tC\t.\t.\t.\n")

    def test_format_flag_rejected(self):
        """FORMAT fields cannot be Flags."""
        text = '##FORMAT=<ID=X,Number=0,Type=Flag,Description="x">\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n'
        with pytest.raises(MalformedHeaderLine, match="Flag"):
            Header.parse(text)
