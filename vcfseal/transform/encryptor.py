"""
Transform Engine (encryption pass)

Encrypts selected FORMAT fields of every sample, in place, and widens
the declared Type of each encrypted field to String so strict VCF
parsers still accept the file.

    ##FORMAT=<ID=GP,Number=G,Type=Float,...>   ->  ##FORMAT=<ID=GP,Number=G,Type=String,...>
    GT:GP  0/1:0.03,0.97,0                     ->  GT:GP  0/1:ENC1_...

Rules:
- Every target must be declared as a FORMAT field, checked before any
  record is read
- Missing values (`.`) are never encrypted
- Tokens must be grammar-safe and must not look like plaintext of the
  field's original type, otherwise the run stops (UnsafeCiphertextEncoding)
- A record is committed only when all its targeted values encrypted
- The original Type of each target is reported in the result; it is not
  kept in the output and is needed for decryption
"""

import io
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..crypto.provider import CryptoProvider, is_grammar_safe
from ..errors import CryptoProviderError, UnknownTargetField, UnsafeCiphertextEncoding
from ..integration.event_logger import EventLogger
from ..vcf import codec
from ..vcf.header import FieldType, Header
from ..vcf.record import MISSING, Record
from .pipeline import RecordOutcome, RecordPipeline, TransformConfig, TransformResult
from .type_map import atomic_output, save_type_map


logger = logging.getLogger(__name__)


class TransformEngine(RecordPipeline):
    """
    Selective FORMAT field encryptor.

    Example:
        >>> engine = TransformEngine({"GP", "PL"}, AESGCMProvider.generate())
        >>> with open("in.vcf", newline="") as fin, open("out.vcf", "w", newline="") as fout:
        ...     result = engine.run(fin, fout)
        >>> result.original_types
        {'GP': 'Float', 'PL': 'Integer'}
    """

    pass_name = "encrypt"

    def __init__(self, target_field_ids: Optional[Iterable[str]] = None,
                 crypto_provider: Optional[CryptoProvider] = None,
                 config: Optional[TransformConfig] = None,
                 event_logger: Optional[EventLogger] = None, **kwargs):
        super().__init__(config, event_logger, **kwargs)
        self._targets: List[str] = []
        self._provider: Optional[CryptoProvider] = None
        self._original_types: Dict[str, FieldType] = {}
        self._widened: Dict[str, bool] = {}
        if target_field_ids is not None or crypto_provider is not None:
            self.configure(target_field_ids or (), crypto_provider)

    def configure(self, target_field_ids: Iterable[str],
                  crypto_provider: CryptoProvider) -> None:
        """
        Set the fields to encrypt and the provider to encrypt with.

        Args:
            target_field_ids: FORMAT field IDs to encrypt
            crypto_provider: Provider used for every value
        """
        self._targets = sorted(set(target_field_ids))
        self._provider = crypto_provider

    @property
    def target_field_ids(self) -> List[str]:
        return list(self._targets)

    def _check_configured(self) -> None:
        if self._provider is None:
            raise RuntimeError("Engine not configured. Call configure() first.")

    def _prepare(self, header: Header, result: TransformResult) -> None:
        unknown = [fid for fid in self._targets if not header.has_field(fid)]
        if unknown:
            raise UnknownTargetField(unknown)

        self._widened = {}
        self._original_types = {
            fid: header.get_field_declaration(fid).type for fid in self._targets
        }
        result.original_types = {
            fid: field_type.value for fid, field_type in self._original_types.items()
        }
        logger.debug("encrypting fields %s", ", ".join(self._targets))

    def _encrypt_value(self, raw: str, field_id: str, sample_index: int,
                       line_number: Optional[int]) -> str:
        try:
            token = self._provider.encrypt(raw.encode('utf-8'))
        except CryptoProviderError as e:
            raise CryptoProviderError(str(e), field_id, sample_index, line_number) from e
        self._check_token(token, field_id)
        return token

    def _check_token(self, token: str, field_id: str) -> None:
        if not isinstance(token, str):
            raise UnsafeCiphertextEncoding(field_id, "provider did not return a string")
        if not is_grammar_safe(token):
            raise UnsafeCiphertextEncoding(
                field_id, "token is empty, missing, or contains reserved characters"
            )
        original = self._original_types[field_id]
        if original is not FieldType.STRING and codec.lexes_as(token, original):
            raise UnsafeCiphertextEncoding(
                field_id, f"token is indistinguishable from a {original.value} value"
            )

    def _widen(self, header: Header, field_id: str) -> bool:
        """Widen a field's Type to String once per run; True if the header changed."""
        with self._lock:
            if self._widened.get(field_id):
                return False
            self._widened[field_id] = True
            return header.set_field_type(field_id, FieldType.STRING)

    def _transform_record(self, record: Record, header: Header) -> RecordOutcome:
        work = record.copy()
        counts: Dict[str, int] = {}
        missing = 0

        for field_id in self._targets:
            if not work.has_field(field_id):
                continue
            for sample_index in range(work.sample_count):
                raw = work.get_sub_value(sample_index, field_id)
                if raw == MISSING:
                    missing += 1
                    continue
                token = self._encrypt_value(raw, field_id, sample_index, work.line_number)
                work.set_sub_value(sample_index, field_id, token)
                counts[field_id] = counts.get(field_id, 0) + 1

        widened = [fid for fid in counts if self._widen(header, fid)]
        return RecordOutcome(
            line_number=record.line_number,
            line=work.serialize() + work.eol,
            counts=counts,
            missing=missing,
            widened=widened,
        )

    def _finish(self, header: Header, result: TransformResult) -> None:
        untouched = [fid for fid in self._targets if not self._widened.get(fid)]
        if untouched:
            logger.info("no values encrypted for %s; Type left unchanged",
                        ", ".join(untouched))


def encrypt_vcf(text: str, target_field_ids: Iterable[str],
                crypto_provider: CryptoProvider, **kwargs) -> Tuple[str, TransformResult]:
    """Convenience function: encrypt VCF text held in memory."""
    engine = TransformEngine(target_field_ids, crypto_provider, **kwargs)
    output = io.StringIO(newline="")
    result = engine.run(io.StringIO(text, newline=""), output)
    return output.getvalue(), result


def encrypt_vcf_file(input_path: str, output_path: str,
                     target_field_ids: Iterable[str],
                     crypto_provider: CryptoProvider,
                     type_map_path: Optional[str] = None,
                     **kwargs) -> TransformResult:
    """
    Convenience function: encrypt a VCF file.

    The output file appears only when the run succeeds. When
    type_map_path is given, the original field types are saved there.
    """
    engine = TransformEngine(target_field_ids, crypto_provider, **kwargs)
    with open(input_path, 'r', encoding='utf-8', errors='surrogateescape',
              newline="") as fin, \
            atomic_output(output_path) as fout:
        result = engine.run(fin, fout)
    if type_map_path is not None:
        save_type_map(type_map_path, result.original_types)
    return result
