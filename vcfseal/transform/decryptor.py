"""
Reverse Transform (decryption pass)

Decrypts fields written by the TransformEngine and restores their
original declared Types from a caller-supplied type map.

Modes:
- strict: the first sub-value that fails to decrypt aborts the run
- lenient: failing sub-values are left as they are, reported in
  result.failures, and the run continues

A field is only decrypted while its header Type is String (the shape
the encryption pass leaves behind). Values without the provider's token
shape fail without a decrypt call. Decrypted plaintext must lex as the
field's original Type. A field with leftover ciphertext keeps Type
String so the output remains valid; it is listed in
result.unrestored_fields.
"""

import io
import logging
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..crypto.provider import CryptoProvider
from ..errors import CryptoProviderError, DecryptionFailed, TypeMismatch, UnknownTargetField
from ..integration.event_logger import EventLogger, EventType
from ..vcf import codec
from ..vcf.header import FieldType, Header
from ..vcf.record import MISSING, Record
from .pipeline import RecordOutcome, RecordPipeline, TransformConfig, TransformResult
from .type_map import atomic_output, load_type_map


logger = logging.getLogger(__name__)

DECRYPT_MODES = ("strict", "lenient")


class Decryptor(RecordPipeline):
    """
    Reverse of TransformEngine.

    Example:
        >>> decryptor = Decryptor({"GP": "Float"}, provider, mode="strict")
        >>> result = decryptor.run(fin, fout)
    """

    pass_name = "decrypt"

    def __init__(self, original_type_map: Optional[Mapping[str, Union[FieldType, str]]] = None,
                 crypto_provider: Optional[CryptoProvider] = None,
                 mode: str = "lenient",
                 config: Optional[TransformConfig] = None,
                 event_logger: Optional[EventLogger] = None, **kwargs):
        super().__init__(config, event_logger, **kwargs)
        self._type_map: Dict[str, FieldType] = {}
        self._provider: Optional[CryptoProvider] = None
        self._mode = "lenient"
        self._active: List[str] = []
        self._failed_fields: set = set()
        if original_type_map is not None or crypto_provider is not None:
            self.configure(original_type_map or {}, crypto_provider, mode)

    def configure(self, original_type_map: Mapping[str, Union[FieldType, str]],
                  crypto_provider: CryptoProvider, mode: str = "lenient") -> None:
        """
        Set the original Types, the provider, and the failure mode.

        Args:
            original_type_map: {field_id: Type before encryption}
            crypto_provider: Provider holding the decryption key
            mode: "strict" or "lenient"
        """
        if mode not in DECRYPT_MODES:
            raise ValueError(f"mode must be one of {', '.join(DECRYPT_MODES)}")
        self._type_map = {fid: FieldType.parse(t) for fid, t in original_type_map.items()}
        self._provider = crypto_provider
        self._mode = mode

    @property
    def mode(self) -> str:
        return self._mode

    def _check_configured(self) -> None:
        if self._provider is None:
            raise RuntimeError("Decryptor not configured. Call configure() first.")

    def _prepare(self, header: Header, result: TransformResult) -> None:
        unknown = [fid for fid in self._type_map if not header.has_field(fid)]
        if unknown:
            raise UnknownTargetField(unknown)

        self._failed_fields = set()
        self._active = []
        for fid in sorted(self._type_map):
            current = header.get_field_declaration(fid).type
            if current is FieldType.STRING:
                self._active.append(fid)
            else:
                logger.warning(
                    "field %s is declared %s, not String; treating it as plaintext",
                    fid, current.value
                )
        result.original_types = {fid: self._type_map[fid].value for fid in self._active}

    def _decrypt_value(self, raw: str, field_id: str, number: str,
                       sample_index: int, line_number: Optional[int]) -> str:
        def failed(reason: str) -> DecryptionFailed:
            return DecryptionFailed(field_id, line_number, sample_index, raw, reason)

        if not self._provider.is_token(raw):
            raise failed("value is not a ciphertext token")
        try:
            plaintext = self._provider.decrypt(raw).decode('utf-8')
        except CryptoProviderError as e:
            raise failed(str(e)) from e
        except UnicodeDecodeError as e:
            raise failed("plaintext is not valid UTF-8") from e

        original = self._type_map[field_id]
        try:
            codec.parse(plaintext, number, original)
        except TypeMismatch as e:
            raise failed(f"plaintext is not a valid {original.value} value") from e
        return plaintext

    def _transform_record(self, record: Record, header: Header) -> RecordOutcome:
        work = record.copy()
        counts: Dict[str, int] = {}
        missing = 0
        failures: List[DecryptionFailed] = []

        for field_id in self._active:
            if not work.has_field(field_id):
                continue
            number = header.get_field_declaration(field_id).number
            for sample_index in range(work.sample_count):
                raw = work.get_sub_value(sample_index, field_id)
                if raw == MISSING:
                    missing += 1
                    continue
                try:
                    plaintext = self._decrypt_value(
                        raw, field_id, number, sample_index, work.line_number
                    )
                except DecryptionFailed as e:
                    if self._mode == "strict":
                        raise
                    failures.append(e)
                    continue
                work.set_sub_value(sample_index, field_id, plaintext)
                counts[field_id] = counts.get(field_id, 0) + 1

        return RecordOutcome(
            line_number=record.line_number,
            line=work.serialize() + work.eol,
            counts=counts,
            missing=missing,
            failures=failures,
        )

    def _report_failure(self, failure, header: Header) -> None:
        if not isinstance(failure, DecryptionFailed):
            super()._report_failure(failure, header)
            return
        self._failed_fields.add(failure.field_id)
        names = header.sample_names
        sample_name = names[failure.sample_index] if failure.sample_index < len(names) else None
        if self.event_logger is not None:
            self.event_logger.log_decryption_failure(
                self._run_id, failure.field_id, failure.line_number, sample_name
            )
        logger.warning("line %s: could not decrypt %s for sample %d",
                       failure.line_number, failure.field_id, failure.sample_index)

    def _finish(self, header: Header, result: TransformResult) -> None:
        for field_id in self._active:
            if field_id in self._failed_fields:
                result.unrestored_fields.append(field_id)
                continue
            original = self._type_map[field_id]
            if header.set_field_type(field_id, original):
                self._emit(EventType.TYPE_RESTORED, field=field_id, type=original.value)


def decrypt_vcf(text: str, original_type_map: Mapping[str, Union[FieldType, str]],
                crypto_provider: CryptoProvider, mode: str = "lenient",
                **kwargs) -> Tuple[str, TransformResult]:
    """Convenience function: decrypt VCF text held in memory."""
    decryptor = Decryptor(original_type_map, crypto_provider, mode, **kwargs)
    output = io.StringIO(newline="")
    result = decryptor.run(io.StringIO(text, newline=""), output)
    return output.getvalue(), result


def decrypt_vcf_file(input_path: str, output_path: str,
                     crypto_provider: CryptoProvider,
                     original_type_map: Optional[Mapping[str, Union[FieldType, str]]] = None,
                     type_map_path: Optional[str] = None,
                     mode: str = "lenient", **kwargs) -> TransformResult:
    """
    Convenience function: decrypt a VCF file.

    The type map is taken from original_type_map or loaded from
    type_map_path. The output file appears only when the run succeeds.
    """
    if original_type_map is None:
        if type_map_path is None:
            raise ValueError("original_type_map or type_map_path is required")
        original_type_map = load_type_map(type_map_path)

    decryptor = Decryptor(original_type_map, crypto_provider, mode, **kwargs)
    with open(input_path, 'r', encoding='utf-8', errors='surrogateescape',
              newline="") as fin, \
            atomic_output(output_path) as fout:
        return decryptor.run(fin, fout)
