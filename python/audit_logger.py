"""
Screening Audit Logging Module

Structured JSON logging for events that callers and operators must see
but that never abort a batch:
- Traveler identities dropped from the response set
- Records arriving without an identity attribute
- Configuration failures at initialization
- Fuzzy scans cut short by the per-record deadline

SECURITY: Record values are sanitized before logging.
"""

import logging
import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field as dataclass_field

from text_utils import sanitize_for_logging

AUDIT_LOGGER_NAME = 'quickmatch.audit'


@dataclass
class ScreeningEvent:
    """Structured screening event for logging"""
    event_type: str  # e.g., TRAVELER_DROPPED, MISSING_IDENTITY
    severity: str  # WARNING, ERROR, CRITICAL
    record_id: str = ""
    batch: str = ""  # watch_list or travelers
    message: str = ""
    source: str = ""  # Module/function that detected the event
    batch_id: str = ""
    additional_context: Dict[str, Any] = dataclass_field(default_factory=dict)
    timestamp: str = dataclass_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'timestamp': self.timestamp,
            'event_type': self.event_type,
            'severity': self.severity,
            'record_id': self.record_id,
            'batch': self.batch,
            'message': self.message,
            'source': self.source,
            'batch_id': self.batch_id,
            'context': self.additional_context
        }

    def to_json(self) -> str:
        """Convert to JSON string"""
        return json.dumps(self.to_dict(), ensure_ascii=False)


class ScreeningAuditLogger:
    """Handles screening event logging with structured output

    Features:
    - Optional audit.log file
    - JSON-formatted events for easy parsing
    - Automatic sanitization of record values
    - Batch ID correlation
    - In-memory event counts per type
    """

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: int = logging.WARNING,
        enable_console: bool = False,
        enable_file: bool = True
    ):
        """Initialize audit logger

        Args:
            log_dir: Directory for log files
            log_level: Minimum log level to record
            enable_console: Also output to console
            enable_file: Write to audit.log file
        """
        self.log_dir = Path(log_dir)

        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(log_level)
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s - AUDIT - %(levelname)s - %(message)s'
        )

        if enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_dir / "audit.log", encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        self._batch_id: str = ""
        self._counts_lock = threading.Lock()
        self.event_counts: Dict[str, int] = {}

    def set_batch_context(self, batch_id: Optional[str] = None) -> str:
        """Set the correlation id for the current batch

        Returns:
            The batch ID being used
        """
        self._batch_id = batch_id or new_batch_id()
        return self._batch_id

    def clear_batch_context(self) -> None:
        self._batch_id = ""

    def _sanitize_input(self, text: str, max_length: int = 50) -> str:
        if not text:
            return ""
        sanitized = sanitize_for_logging(text)
        if len(sanitized) > max_length:
            return sanitized[:max_length] + "...(truncated)"
        return sanitized

    def _sanitize_context(self, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Sanitize all values in a context dictionary for safe logging"""
        if not context:
            return {}

        sanitized = {}
        for key, value in context.items():
            safe_key = self._sanitize_input(str(key), max_length=100) if key else "unknown"
            if value is None or isinstance(value, (bool, int, float)):
                sanitized[safe_key] = value
            elif isinstance(value, dict):
                sanitized[safe_key] = self._sanitize_context(value)
            elif isinstance(value, (list, tuple)):
                sanitized[safe_key] = [
                    item if isinstance(item, (bool, int, float, type(None)))
                    else self._sanitize_input(str(item), max_length=200)
                    for item in value
                ]
            else:
                sanitized[safe_key] = self._sanitize_input(str(value), max_length=200)
        return sanitized

    def log_event(
        self,
        event_type: str,
        severity: str = "WARNING",
        record_id: str = "",
        batch: str = "",
        message: str = "",
        source: str = "",
        additional_context: Optional[Dict[str, Any]] = None,
        batch_id: Optional[str] = None
    ) -> ScreeningEvent:
        """Log a screening event

        Args:
            event_type: Type of event (TRAVELER_DROPPED, MISSING_IDENTITY, ...)
            severity: WARNING, ERROR, or CRITICAL
            record_id: Identity of the record concerned (will be sanitized)
            batch: Batch kind the record belongs to
            message: Human-readable description
            source: Source module/function
            additional_context: Additional context (will be sanitized)
            batch_id: Correlation id; defaults to the current batch context
        """
        event = ScreeningEvent(
            event_type=event_type,
            severity=severity,
            record_id=self._sanitize_input(record_id),
            batch=batch,
            message=sanitize_for_logging(message),
            source=source,
            batch_id=self._batch_id if batch_id is None else batch_id,
            additional_context=self._sanitize_context(additional_context)
        )
        with self._counts_lock:
            self.event_counts[event_type] = self.event_counts.get(event_type, 0) + 1

        if severity == "CRITICAL":
            self.logger.critical(event.to_json())
        elif severity == "ERROR":
            self.logger.error(event.to_json())
        else:
            self.logger.warning(event.to_json())
        return event

    def log_traveler_dropped(self, traveler_id: str, source: str = "aggregate",
                             batch_id: Optional[str] = None) -> ScreeningEvent:
        """Log a traveler identity that has no response after aggregation"""
        return self.log_event(
            event_type="TRAVELER_DROPPED",
            record_id=traveler_id,
            batch="travelers",
            message="Valid traveler was dropped from response list",
            source=source,
            batch_id=batch_id
        )

    def log_missing_identity(self, batch: str, position: int, identity_field: str,
                             source: str = "", batch_id: Optional[str] = None) -> ScreeningEvent:
        """Log a record that carries no identity attribute and was skipped"""
        return self.log_event(
            event_type="MISSING_IDENTITY",
            batch=batch,
            message=f"Record without '{identity_field}' skipped",
            source=source,
            additional_context={'position': position},
            batch_id=batch_id
        )

    def log_configuration_error(self, error: Exception, source: str = "initialize") -> ScreeningEvent:
        return self.log_event(
            event_type="CONFIGURATION_ERROR",
            severity="ERROR",
            message=str(error),
            source=source
        )

    def log_deadline_exceeded(self, traveler_id: str, scan: str, deadline_ms: int,
                              scanned: int, total: int,
                              batch_id: Optional[str] = None) -> ScreeningEvent:
        """Log a fuzzy scan stopped before covering the whole watch list"""
        return self.log_event(
            event_type="FUZZY_SCAN_DEADLINE",
            record_id=traveler_id,
            batch="travelers",
            message=f"{scan} scan stopped after {deadline_ms} ms",
            source="match_one",
            additional_context={'scanned': scanned, 'total': total},
            batch_id=batch_id
        )


def new_batch_id() -> str:
    return f"BATCH-{uuid.uuid4().hex[:8]}"


_audit_logger: Optional[ScreeningAuditLogger] = None


def get_audit_logger(
    log_dir: str = "logs",
    enable_console: bool = False,
    enable_file: bool = False
) -> ScreeningAuditLogger:
    """Get or create the global audit logger instance"""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = ScreeningAuditLogger(
            log_dir=log_dir,
            enable_console=enable_console,
            enable_file=enable_file
        )
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global audit logger (for testing)"""
    global _audit_logger
    _audit_logger = None
