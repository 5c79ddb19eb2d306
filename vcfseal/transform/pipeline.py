"""
Record Pipeline

Run machinery shared by the encryption and decryption passes.

Run states:
    INIT -> HEADER_LOADED -> STREAMING -> FINALIZED

The header is parsed and validated before any record is touched.
Records are transformed one at a time (or by a thread pool, keeping
input order) and spooled; the header is written only after every record
succeeded, because type changes are decided while streaming. A fatal
error therefore leaves the output stream untouched.
"""

import itertools
import logging
import secrets
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, TextIO, Tuple

from ..errors import (
    AbortedAtHeader, CryptoProviderError, MalformedHeaderLine,
    RecordParseError, VcfSealError,
)
from ..integration.event_logger import EventLogger, EventType
from ..vcf.header import Header
from ..vcf.record import Record
from ..vcf.stream import VcfReader, VcfWriter


logger = logging.getLogger(__name__)


# Constants
DEFAULT_WORKERS = 1
DEFAULT_BATCH_SIZE = 256
DEFAULT_SPOOL_SIZE = 8 * 1024 * 1024   # 8 MiB in memory before spilling to disk
RECORD_ERROR_POLICIES = ("abort", "skip")


class EngineState(Enum):
    """Lifecycle of a single run."""
    INIT = "init"
    HEADER_LOADED = "header_loaded"
    STREAMING = "streaming"
    FINALIZED = "finalized"


@dataclass
class TransformConfig:
    """
    Run options shared by both passes.

    Attributes:
        workers: Threads used to transform records (1 = inline)
        batch_size: Records handed to the pool at a time
        on_record_error: "abort" stops the run on a record-stage error;
            "skip" leaves the record out of the output and reports it
        spool_size: Bytes of output kept in memory before spooling to disk
    """
    workers: int = DEFAULT_WORKERS
    batch_size: int = DEFAULT_BATCH_SIZE
    on_record_error: str = "abort"
    spool_size: int = DEFAULT_SPOOL_SIZE

    def __post_init__(self):
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.on_record_error not in RECORD_ERROR_POLICIES:
            raise ValueError(
                f"on_record_error must be one of {', '.join(RECORD_ERROR_POLICIES)}"
            )


@dataclass
class RecordFailure:
    """A record left out of the output."""
    line_number: Optional[int]
    reason: str
    field_id: Optional[str] = None
    sample_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line': self.line_number,
            'reason': self.reason,
            'field': self.field_id,
            'sample': self.sample_index,
        }


@dataclass
class RecordOutcome:
    """What transforming one record produced."""
    line_number: int
    line: Optional[str]
    counts: Dict[str, int] = field(default_factory=dict)
    missing: int = 0
    widened: List[str] = field(default_factory=list)
    failures: List[Any] = field(default_factory=list)


@dataclass
class TransformResult:
    """Summary of a run."""
    run_id: str = ""
    records_read: int = 0
    records_written: int = 0
    values_transformed: Dict[str, int] = field(default_factory=dict)
    values_missing: int = 0
    original_types: Dict[str, str] = field(default_factory=dict)
    failures: List[Any] = field(default_factory=list)
    unrestored_fields: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'records_read': self.records_read,
            'records_written': self.records_written,
            'values_transformed': dict(self.values_transformed),
            'values_missing': self.values_missing,
            'original_types': dict(self.original_types),
            'failures': len(self.failures),
            'unrestored_fields': list(self.unrestored_fields),
        }


def _batches(items: Iterable, size: int) -> Iterator[List]:
    iterator = iter(items)
    while True:
        batch = list(itertools.islice(iterator, size))
        if not batch:
            return
        yield batch


class RecordPipeline:
    """
    Base class for the two passes.

    Subclasses implement _prepare (header validation), _transform_record
    (per-record work, returning a RecordOutcome) and _finish (header
    changes decided after streaming).
    """

    pass_name = "transform"

    def __init__(self, config: Optional[TransformConfig] = None,
                 event_logger: Optional[EventLogger] = None, **kwargs):
        """
        Args:
            config: Run options; keyword arguments override its fields
            event_logger: Optional audit log receiving run events
        """
        if config is None:
            config = TransformConfig(**kwargs)
        elif kwargs:
            values = dict(config.__dict__)
            values.update(kwargs)
            config = TransformConfig(**values)
        self.config = config
        self.event_logger = event_logger
        self._state = EngineState.INIT
        self._lock = threading.Lock()
        self._run_id = ""

    @property
    def state(self) -> EngineState:
        return self._state

    def _emit(self, event_type: EventType, **details) -> None:
        if self.event_logger is not None:
            self.event_logger.log(event_type, self._run_id, **details)

    # ========================================================================
    # Hooks
    # ========================================================================

    def _check_configured(self) -> None:
        raise NotImplementedError

    def _prepare(self, header: Header, result: TransformResult) -> None:
        raise NotImplementedError

    def _transform_record(self, record: Record, header: Header) -> RecordOutcome:
        raise NotImplementedError

    def _finish(self, header: Header, result: TransformResult) -> None:
        raise NotImplementedError

    # ========================================================================
    # Run
    # ========================================================================

    def run(self, input_stream: TextIO, output_stream: TextIO) -> TransformResult:
        """
        Transform a whole VCF stream.

        Open files with newline="" so line terminators are preserved, and
        with errors="surrogateescape" so a line that is not valid UTF-8 is
        reported (and, for data lines, skippable) at its own position.

        Returns:
            TransformResult summary

        Raises:
            AbortedAtHeader: If the header is malformed
            UnknownTargetField: If a configured field is not declared
            VcfSealError: On any fatal record-stage error
        """
        self._check_configured()
        self._state = EngineState.INIT
        self._run_id = secrets.token_hex(8)
        result = TransformResult(run_id=self._run_id)
        self._emit(EventType.RUN_START, pass_name=self.pass_name)
        logger.info("%s run %s started", self.pass_name, self._run_id)

        try:
            reader = VcfReader(input_stream)
        except MalformedHeaderLine as e:
            self._emit(EventType.RUN_ABORTED, stage="header", line=e.line_number)
            raise AbortedAtHeader(e) from e

        header = reader.header
        self._state = EngineState.HEADER_LOADED
        try:
            self._prepare(header, result)
        except VcfSealError as e:
            self._emit(EventType.RUN_ABORTED, stage="configuration", error=type(e).__name__)
            raise
        self._emit(
            EventType.HEADER_LOADED,
            samples=len(header.sample_names),
            format_fields=len(header.format_ids),
        )

        self._state = EngineState.STREAMING
        with tempfile.SpooledTemporaryFile(
            max_size=self.config.spool_size, mode="w+", encoding="utf-8", newline=""
        ) as spool:
            try:
                for outcome in self._outcomes(reader, header):
                    self._collect(outcome, result, header)
                    if outcome.line is not None:
                        spool.write(outcome.line)
                        result.records_written += 1
                self._finish(header, result)
            except VcfSealError as e:
                line = getattr(e, "line_number", None)
                self._emit(EventType.RUN_ABORTED, stage="records",
                           error=type(e).__name__, line=line)
                logger.error("%s run %s aborted: %s", self.pass_name, self._run_id,
                             type(e).__name__)
                raise

            writer = VcfWriter(output_stream, header)
            spool.seek(0)
            writer.write_lines(spool)

        self._state = EngineState.FINALIZED
        summary = result.to_dict()
        summary.pop('run_id')
        self._emit(EventType.RUN_COMPLETE, **summary)
        logger.info(
            "%s run %s finished: %d records read, %d written, %d failures",
            self.pass_name, self._run_id, result.records_read,
            result.records_written, len(result.failures)
        )
        return result

    def _outcomes(self, reader: VcfReader, header: Header) -> Iterator[RecordOutcome]:
        lines = reader.iter_lines()
        if self.config.workers == 1:
            for item in lines:
                yield self._process_line(item, header)
            return

        with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
            for batch in _batches(lines, self.config.batch_size):
                yield from pool.map(lambda item: self._process_line(item, header), batch)

    def _process_line(self, item: Tuple[int, str, str], header: Header) -> RecordOutcome:
        line_number, content, eol = item
        try:
            record = Record.parse(content, header.expected_columns(), line_number, eol)
            return self._transform_record(record, header)
        except (RecordParseError, CryptoProviderError) as e:
            if self.config.on_record_error == "abort":
                raise
            logger.warning("skipping line %d: %s", line_number, type(e).__name__)
            failure = RecordFailure(
                line_number=line_number,
                reason=str(e),
                field_id=getattr(e, "field_id", None),
                sample_index=getattr(e, "sample_index", None),
            )
            return RecordOutcome(line_number=line_number, line=None, failures=[failure])

    def _collect(self, outcome: RecordOutcome, result: TransformResult,
                 header: Header) -> None:
        result.records_read += 1
        for field_id, count in outcome.counts.items():
            result.values_transformed[field_id] = result.values_transformed.get(field_id, 0) + count
        result.values_missing += outcome.missing
        for field_id in outcome.widened:
            self._emit(EventType.TYPE_WIDENED, field=field_id,
                       line=outcome.line_number)
        for failure in outcome.failures:
            result.failures.append(failure)
            self._report_failure(failure, header)

    def _report_failure(self, failure: Any, header: Header) -> None:
        self._emit(EventType.RECORD_FAILED, line=failure.line_number,
                   field=failure.field_id)
