"""
Event Logger Module

Audit trail for encryption and decryption runs.

Features:
- Run, header and field-type events
- Per-value failure events
- Privacy-preserving sample hashes (SHA-256); sample names, plaintext and
  ciphertext never enter the log
- Tamper-evident hash chain: each entry commits to the previous one

Entry hash:
    SHA-256(prev_hash || payload), genesis prev_hash = 64 zeros
"""

import hashlib
import hmac
import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
GENESIS_HASH = "0" * 64


# ============================================================================
# Privacy Functions
# ============================================================================

def get_sample_hash(sample_name: str) -> str:
    """
    Compute privacy-preserving hash of a sample name.

    Lets events for the same sample be correlated without storing the
    sample identifier itself.

    Args:
        sample_name: The sample column name from the #CHROM line

    Returns:
        Hex-encoded SHA-256 hash
    """
    return hashlib.sha256(sample_name.encode('utf-8')).hexdigest()


def get_sample_hash_short(sample_name: str) -> str:
    """First 16 characters of the sample hash, for display."""
    return get_sample_hash(sample_name)[:16]


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of events recorded during a run."""

    # Run lifecycle
    RUN_START = "run_start"
    RUN_COMPLETE = "run_complete"
    RUN_ABORTED = "run_aborted"

    # Header events
    HEADER_LOADED = "header_loaded"
    TYPE_WIDENED = "type_widened"
    TYPE_RESTORED = "type_restored"

    # Record events
    RECORD_FAILED = "record_failed"
    DECRYPTION_FAILED = "decryption_failed"


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class TransformEvent:
    """One audit event."""
    event_type: EventType
    run_id: str
    timestamp: int  # Unix timestamp
    details: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> str:
        """Serialize to the compact JSON stored in the chain."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'run': self.run_id,
            'time': self.timestamp,
            'details': self.details,
        }, separators=(',', ':'), sort_keys=True)

    @classmethod
    def from_payload(cls, payload: str) -> 'TransformEvent':
        data = json.loads(payload)
        return cls(
            event_type=EventType(data['type']),
            run_id=data['run'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | run:{self.run_id}"
        )


@dataclass(frozen=True)
class LogEntry:
    """Immutable chained log entry."""
    index: int
    prev_hash: str
    payload: str
    hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'prev_hash': self.prev_hash,
            'payload': self.payload,
            'hash': self.hash,
        }


def _entry_hash(prev_hash: str, payload: str) -> str:
    return hashlib.sha256((prev_hash + payload).encode('utf-8')).hexdigest()


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    Hash-chained audit log for transform runs.

    Safe to share between threads and between runs; every event carries
    the run id of the engine run that produced it.
    """

    def __init__(self):
        self._entries: List[LogEntry] = []
        self._callbacks: List[Callable[[TransformEvent], None]] = []
        self._lock = threading.Lock()

    def add_callback(self, callback: Callable[[TransformEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[TransformEvent], None]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def log(self, event_type: EventType, run_id: str, **details) -> TransformEvent:
        """
        Record an event.

        Args:
            event_type: Kind of event
            run_id: Id of the engine run
            **details: JSON-serializable event details

        Returns:
            The logged event
        """
        event = TransformEvent(
            event_type=event_type,
            run_id=run_id,
            timestamp=int(time.time()),
            details=details,
        )
        payload = event.to_payload()

        with self._lock:
            prev_hash = self._entries[-1].hash if self._entries else GENESIS_HASH
            entry = LogEntry(
                index=len(self._entries),
                prev_hash=prev_hash,
                payload=payload,
                hash=_entry_hash(prev_hash, payload),
            )
            self._entries.append(entry)

        for callback in list(self._callbacks):
            callback(event)
        return event

    def log_decryption_failure(self, run_id: str, field_id: str,
                               line_number: Optional[int],
                               sample_name: Optional[str]) -> TransformEvent:
        """Log a sub-value that could not be decrypted (sample name is hashed)."""
        return self.log(
            EventType.DECRYPTION_FAILED,
            run_id,
            field=field_id,
            line=line_number,
            sample=get_sample_hash_short(sample_name) if sample_name else None,
        )

    # ========================================================================
    # Retrieval and Verification
    # ========================================================================

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    @property
    def head_hash(self) -> str:
        """Hash of the latest entry (commits to the whole log)."""
        return self._entries[-1].hash if self._entries else GENESIS_HASH

    def get_all_events(self) -> List[TransformEvent]:
        return [TransformEvent.from_payload(entry.payload) for entry in self._entries]

    def get_events_by_type(self, event_type: EventType) -> List[TransformEvent]:
        return [event for event in self.get_all_events() if event.event_type == event_type]

    def get_events_for_run(self, run_id: str) -> List[TransformEvent]:
        return [event for event in self.get_all_events() if event.run_id == run_id]

    def verify_chain(self) -> bool:
        """
        Recompute every entry hash and check the links.

        Returns:
            True if no entry was modified, removed or reordered
        """
        prev_hash = GENESIS_HASH
        for index, entry in enumerate(self._entries):
            if entry.index != index or entry.prev_hash != prev_hash:
                return False
            expected = _entry_hash(prev_hash, entry.payload)
            if not hmac.compare_digest(expected, entry.hash):
                return False
            prev_hash = entry.hash
        return True

    def export_json(self) -> str:
        """Export the full chain as JSON."""
        return json.dumps([entry.to_dict() for entry in self._entries], indent=2)

    @classmethod
    def from_json(cls, data: str) -> 'EventLogger':
        """Load a chain exported with export_json (call verify_chain afterwards)."""
        event_logger = cls()
        event_logger._entries = [LogEntry(**item) for item in json.loads(data)]
        return event_logger


def create_event_logger() -> EventLogger:
    """Create a new empty event logger."""
    return EventLogger()
