# Integration Module
"""
Audit logging for transform runs.

All events are chained by SHA-256 and carry only hashed sample names.
"""

from .event_logger import (
    EventLogger,
    EventType,
    LogEntry,
    TransformEvent,
    create_event_logger,
    get_sample_hash,
)

__all__ = [
    'EventType',
    'TransformEvent',
    'EventLogger',
    'LogEntry',
    'get_sample_hash',
    'create_event_logger',
]
