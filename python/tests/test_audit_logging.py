"""
Integration Tests for QuickMatch audit logging

End-to-end tests that verify data-integrity events are recorded:
- Structured JSON events in audit.log
- Log injection resistance for record values
- Events raised from screening and initialization
"""

import pytest
import json
import yaml
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config_manager import ConfigManager, ConfigurationError
from audit_logger import ScreeningAuditLogger, ScreeningEvent, get_audit_logger, reset_audit_logger
from text_utils import sanitize_for_logging
from screener import DerogScreener


class TestAuditLoggerIntegration:
    """Tests for audit event logging"""

    @pytest.fixture
    def temp_log_dir(self, tmp_path):
        """Create temp directory for logs"""
        log_dir = tmp_path / "logs"
        log_dir.mkdir()
        return log_dir

    @pytest.fixture(autouse=True)
    def reset_logger(self):
        """Reset logger before each test"""
        reset_audit_logger()

    def test_audit_logger_creates_log_file(self, temp_log_dir):
        """Test that audit logger creates audit.log file"""
        logger = ScreeningAuditLogger(log_dir=str(temp_log_dir))
        logger.log_traveler_dropped("T1")

        log_file = temp_log_dir / "audit.log"
        assert log_file.exists()
        assert "TRAVELER_DROPPED" in log_file.read_text()

    def test_file_output_disabled(self, tmp_path):
        """Test that no log directory is created when file output is off"""
        log_dir = tmp_path / "never"
        logger = ScreeningAuditLogger(log_dir=str(log_dir), enable_file=False)
        logger.log_traveler_dropped("T1")

        assert not log_dir.exists()
        assert logger.event_counts == {'TRAVELER_DROPPED': 1}

    def test_audit_logger_sanitizes_record_id(self, temp_log_dir):
        """Test that logged record ids are sanitized - newlines converted to spaces"""
        logger = ScreeningAuditLogger(log_dir=str(temp_log_dir))
        logger.log_traveler_dropped("T1\nFAKE LOG ENTRY\n")

        log_content = (temp_log_dir / "audit.log").read_text()

        lines = log_content.strip().split('\n')
        assert len(lines) == 1, "Should be single log line, newlines should be sanitized"

    def test_audit_logger_includes_batch_id(self, temp_log_dir):
        """Test that logs include the batch id when set"""
        logger = ScreeningAuditLogger(log_dir=str(temp_log_dir))

        batch_id = logger.set_batch_context(batch_id="BATCH-12345")
        logger.log_missing_identity("travelers", 3, "traveler_id")

        log_content = (temp_log_dir / "audit.log").read_text()
        assert batch_id == "BATCH-12345"
        assert "BATCH-12345" in log_content

    def test_generated_batch_id(self):
        logger = ScreeningAuditLogger(enable_file=False)
        assert logger.set_batch_context().startswith("BATCH-")
        logger.clear_batch_context()
        assert logger.log_traveler_dropped("T1").batch_id == ""

    def test_screening_event_to_json(self):
        """Test ScreeningEvent JSON serialization"""
        event = ScreeningEvent(
            event_type="MISSING_IDENTITY",
            severity="WARNING",
            batch="watch_list",
            message="Record without 'derog_id' skipped",
            source="normalize",
            additional_context={'position': 4}
        )

        data = json.loads(event.to_json())
        assert data['event_type'] == "MISSING_IDENTITY"
        assert data['context'] == {'position': 4}

    def test_context_values_sanitized(self):
        logger = ScreeningAuditLogger(enable_file=False)
        event = logger.log_event("CUSTOM", additional_context={
            'name': "A\r\nB", 'count': 2, 'nested': {'value': "x\ny"}, 'items': ["p\nq", 1]
        })

        assert event.additional_context == {
            'name': "A B", 'count': 2, 'nested': {'value': "x y"}, 'items': ["p q", 1]
        }

    def test_long_record_id_truncated(self):
        logger = ScreeningAuditLogger(enable_file=False)
        event = logger.log_traveler_dropped("X" * 80)
        assert event.record_id.endswith("...(truncated)")
        assert event.record_id.startswith("X" * 50)

    def test_deadline_event(self, temp_log_dir):
        logger = ScreeningAuditLogger(log_dir=str(temp_log_dir))
        event = logger.log_deadline_exceeded("T1", "phonetic", 5, 120, 1000)

        assert event.event_type == "FUZZY_SCAN_DEADLINE"
        assert event.additional_context == {'scanned': 120, 'total': 1000}

    def test_configuration_error_is_error_severity(self, temp_log_dir):
        logger = ScreeningAuditLogger(log_dir=str(temp_log_dir))
        logger.log_configuration_error(ConfigurationError("bad clauses"))

        log_content = (temp_log_dir / "audit.log").read_text()
        assert "CONFIGURATION_ERROR" in log_content
        assert "ERROR" in log_content

    def test_global_audit_logger(self):
        assert get_audit_logger() is get_audit_logger()
        reset_audit_logger()
        assert get_audit_logger().event_counts == {}


class TestEndToEndAuditFlow:
    """End-to-end audit tests through the screener"""

    @pytest.fixture(autouse=True)
    def reset_config(self):
        ConfigManager.reset_instance()
        reset_audit_logger()

    @pytest.fixture
    def screener(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({
            'matching': {'accuracy_mode': 'Balanced', 'clauses': {'Balanced': [['document_id']]}}
        }))
        audit = ScreeningAuditLogger(log_dir=str(tmp_path / "logs"))
        return DerogScreener(config=ConfigManager(str(config_file)), audit_logger=audit)

    def test_missing_identity_logged_with_batch(self, screener, tmp_path):
        """Test that a traveler record without gtasId is skipped and audited"""
        screener.initialize([{'derogId': 'D1', 'DOC_ID': 'A1'}])
        screener.match([{'DOC_ID': 'A1'}])

        events = [json.loads(line.split(' - AUDIT - WARNING - ', 1)[1])
                  for line in (tmp_path / "logs" / "audit.log").read_text().strip().split('\n')]
        assert events[0]['event_type'] == "MISSING_IDENTITY"
        assert events[0]['batch'] == "travelers"
        assert events[0]['batch_id'].startswith("BATCH-")

    def test_non_mapping_record_skipped(self, screener):
        snapshot = screener.initialize([["D1", "A1"], {'derogId': 'D2', 'DOC_ID': 'A1'}])

        assert [rec['derog_id'] for rec in snapshot.watch_list] == ['D2']
        assert screener.audit.event_counts['MISSING_IDENTITY'] == 1

    def test_configuration_error_audited(self, screener):
        screener.config.matching.clauses = {}
        with pytest.raises(ConfigurationError):
            screener.initialize([{'derogId': 'D1'}])
        assert screener.audit.event_counts['CONFIGURATION_ERROR'] == 1

    def test_each_match_gets_own_batch_id(self, screener, tmp_path):
        """Test that every match call correlates its events under a fresh batch id"""
        screener.initialize([{'derogId': 'D1', 'DOC_ID': 'A1'}])
        screener.match([{'DOC_ID': 'A1'}])
        screener.match([{'DOC_ID': 'A1'}])

        events = [json.loads(line.split(' - AUDIT - WARNING - ', 1)[1])
                  for line in (tmp_path / "logs" / "audit.log").read_text().strip().split('\n')]
        batch_ids = [event['batch_id'] for event in events]
        assert len(batch_ids) == 2
        assert batch_ids[0] != batch_ids[1]
        assert all(batch_id.startswith("BATCH-") for batch_id in batch_ids)

    def test_failed_match_leaves_no_batch_context(self, screener, monkeypatch):
        screener.initialize([{'derogId': 'D1', 'DOC_ID': 'A1'}])

        def broken(*args, **kwargs):
            raise RuntimeError("matching failed")

        monkeypatch.setattr(screener, '_match_records', broken)
        with pytest.raises(RuntimeError):
            screener.match([{'gtasId': 'T1', 'DOC_ID': 'A1'}])

        assert screener.audit.log_traveler_dropped("T9").batch_id == ""

    def test_event_counts_under_concurrent_logging(self):
        logger = ScreeningAuditLogger(enable_file=False)
        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(lambda i: logger.log_traveler_dropped(f"T{i}", batch_id=f"B{i % 4}"),
                              range(400)))

        assert logger.event_counts['TRAVELER_DROPPED'] == 400

    def test_log_injection_prevented(self):
        """Test that record values cannot forge log lines"""
        malicious = "D1\n2024-01-01 - AUDIT - WARNING - forged"
        assert '\n' not in sanitize_for_logging(malicious)
        assert sanitize_for_logging(None) == ''
        assert len(sanitize_for_logging("A" * 900)) == 500
