"""
QuickMatch Derog Screener
Multi-strategy matching of travelers against a derogatory watch list

Features:
- Clause index for O(1) exact matching per clause
- Accuracy modes selecting clause sets and extra fuzzy passes
- Phonetic (double metaphone) + Jaro-Winkler name matching
- Name text distance combined with DOB or citizenship agreement
- One deduplicated response per traveler identity
- Configurable via config.yaml

SECURITY: Record values are sanitized before they are logged.
"""

import argparse
import csv
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Callable, Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from aggregator import aggregate
from audit_logger import ScreeningAuditLogger, get_audit_logger, new_batch_id
from clause_index import ClauseIndex, build_clause_index
from config_manager import AccuracyMode, ConfigManager, ConfigurationError, get_config
from models import (
    AttributeRecord, Clause, MatchHit, MatchingResult, TravelerResponse,
    DEROG_ID, TRAVELER_ID, DERIVED_FULL_NAME, DERIVED_PHONETIC_CODE,
    DERIVED_DOB, DERIVED_CITIZENSHIP, EXACT_CONFIDENCE, TEXT_DISTANCE_CLAUSE_LABEL
)
from normalizer import RecordNormalizer
from phonetic import PhoneticEncoder
from text_distance import TextDistanceScorer
from text_utils import sanitize_for_logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class EngineNotInitializedError(RuntimeError):
    """Raised when matching is attempted before a successful initialize()"""
    pass


@dataclass(frozen=True)
class MatchingSnapshot:
    """Everything a match call reads, built once per initialize() and never mutated"""
    mode: AccuracyMode
    clauses: Tuple[Clause, ...]
    watch_list: Tuple[AttributeRecord, ...]
    index: ClauseIndex
    watch_list_name: str
    traveler_normalizer: RecordNormalizer
    key_separator: str = ""
    initialized_at: str = ""


class DerogScreener:
    """Screens traveler batches against a watch-list snapshot"""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        jaro_winkler_threshold: Optional[float] = None,
        audit_logger: Optional[ScreeningAuditLogger] = None
    ):
        """Initialize screener

        Args:
            config: Configuration manager instance
            jaro_winkler_threshold: Overrides the configured name similarity threshold
            audit_logger: Logger for data-integrity events
        """
        self.config = config or get_config()
        threshold = jaro_winkler_threshold
        if threshold is None:
            threshold = self.config.matching.jaro_winkler_threshold
        self.scorer = TextDistanceScorer(threshold)
        self.encoder = PhoneticEncoder(self.config.matching.phonetic_code_max_length)
        self.audit = audit_logger or get_audit_logger(
            log_dir=self.config.logging.audit_log_dir,
            enable_console=self.config.logging.console,
            enable_file=self.config.logging.audit_to_file
        )
        self._snapshot: Optional[MatchingSnapshot] = None
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Optional[MatchingSnapshot]:
        return self._snapshot

    @property
    def is_initialized(self) -> bool:
        return self._snapshot is not None

    def _require_snapshot(self) -> MatchingSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise EngineNotInitializedError("initialize() must complete before matching")
        return snapshot

    def initialize(self, watch_list_items: Iterable[Mapping[str, Any]]) -> MatchingSnapshot:
        """Normalize the watch list and build its clause index

        The new snapshot replaces the previous one only once it is fully
        built; matches in flight keep reading the snapshot they started with.

        Args:
            watch_list_items: Raw watch-list records, each carrying an identifier

        Returns:
            The installed MatchingSnapshot

        Raises:
            ConfigurationError: If mode, clauses, renames or regex are unusable
        """
        start_time = time.perf_counter()
        try:
            mode = self.config.mode
            clauses = tuple(Clause.of(c) for c in self.config.clauses_for_mode(mode))
            if not clauses:
                raise ConfigurationError(f"No clauses configured for accuracy mode '{mode.value}'")
            derog_normalizer = RecordNormalizer.from_config(self.config, DEROG_ID, self.encoder)
            traveler_normalizer = RecordNormalizer.from_config(self.config, TRAVELER_ID, self.encoder)
        except ConfigurationError as e:
            self.audit.log_configuration_error(e)
            raise

        watch_list = tuple(self._normalize_batch(derog_normalizer, watch_list_items, DEROG_ID, 'watch_list'))
        separator = self.config.matching.clause_key_separator
        index = build_clause_index(watch_list, clauses, separator)

        name_attribute = self.config.matching.watch_list_name_attribute
        watch_list_name = watch_list[0].get(name_attribute, '') if watch_list else ''

        snapshot = MatchingSnapshot(
            mode=mode,
            clauses=clauses,
            watch_list=watch_list,
            index=index,
            watch_list_name=watch_list_name,
            traveler_normalizer=traveler_normalizer,
            key_separator=separator,
            initialized_at=datetime.now(timezone.utc).isoformat()
        )
        with self._lock:
            self._snapshot = snapshot

        elapsed = time.perf_counter() - start_time
        logger.info("Derog screener initialized:")
        logger.info("   - Accuracy mode: %s", mode.value)
        logger.info("   - Watch-list records: %d", len(watch_list))
        logger.info("   - Clauses: %d, index keys: %d", len(clauses), len(index))
        logger.info("   - Built in %.3f seconds", elapsed)
        return snapshot

    def _normalize_batch(
        self,
        normalizer: RecordNormalizer,
        records: Iterable[Mapping[str, Any]],
        identity_field: str,
        batch: str,
        batch_id: Optional[str] = None
    ) -> List[AttributeRecord]:
        normalized = []
        for position, raw in enumerate(records):
            if not isinstance(raw, Mapping):
                self.audit.log_missing_identity(batch, position, identity_field,
                                                source='normalize', batch_id=batch_id)
                continue
            record = normalizer.normalize(raw)
            if not record.get(identity_field):
                self.audit.log_missing_identity(batch, position, identity_field,
                                                source='normalize', batch_id=batch_id)
                continue
            normalized.append(record)
        return normalized

    def match(self, travelers: Iterable[Mapping[str, Any]]) -> MatchingResult:
        """Screen a traveler batch

        Args:
            travelers: Raw traveler records, possibly several per traveler identity

        Returns:
            MatchingResult with one response per traveler identity

        Raises:
            EngineNotInitializedError: If initialize() has not completed
        """
        snapshot = self._require_snapshot()
        batch_id = new_batch_id()

        records = self._normalize_batch(snapshot.traveler_normalizer, travelers, TRAVELER_ID,
                                        'travelers', batch_id)
        responses = self._match_records(records, snapshot, batch_id)
        result = aggregate(responses, [rec[TRAVELER_ID] for rec in records], self.audit, batch_id)

        logger.info("Batch %s: %d records, %d travelers, %d hits",
                    batch_id, len(records), len(result.responses), result.total_hits)
        return result

    def _match_records(self, records: Sequence[AttributeRecord], snapshot: MatchingSnapshot,
                       batch_id: Optional[str] = None) -> List[TravelerResponse]:
        perf = self.config.performance
        match_fn = partial(self.match_one, snapshot=snapshot, batch_id=batch_id)
        if perf.concurrent_matching and len(records) >= perf.parallel_batch_threshold:
            with ThreadPoolExecutor(max_workers=perf.max_threads) as executor:
                return list(executor.map(match_fn, records))
        return [match_fn(rec) for rec in records]

    def match_one(self, traveler: AttributeRecord, snapshot: Optional[MatchingSnapshot] = None,
                  batch_id: Optional[str] = None) -> TravelerResponse:
        """Match one normalized traveler record

        Clauses are walked in configured order; a watch-list identifier is
        credited at most once, under the first clause or pass that finds it.

        Args:
            traveler: Normalized traveler record
            snapshot: Snapshot to read; defaults to the installed one
            batch_id: Correlation id for audit events

        Returns:
            TravelerResponse for the record's traveler identity
        """
        snapshot = snapshot or self._require_snapshot()
        traveler_id = traveler.get(TRAVELER_ID, '')
        safe_id = sanitize_for_logging(traveler_id)
        found = set()
        hits: List[MatchHit] = []

        phonetic_hits: Collection[str] = ()
        if snapshot.mode.phonetic_pass:
            phonetic_hits = self._fuzzy_scan(traveler, snapshot, self._phonetic_match, 'phonetic',
                                            found, batch_id)

        for clause in snapshot.clauses:
            key = clause.key(traveler, snapshot.key_separator)
            candidates = set(snapshot.index.lookup(clause, key))
            if candidates:
                logger.info("traveler %s matches derog ids %s on clause %s",
                            safe_id, sorted(candidates), clause.label)
                logger.debug("Matched string: %s", sanitize_for_logging(key))
            candidates.update(phonetic_hits)

            for derog_id in sorted(candidates):
                if derog_id not in found:
                    hits.append(MatchHit(derog_id, clause.label, clause.confidence, snapshot.watch_list_name))
                    found.add(derog_id)

        if snapshot.mode.text_distance_pass:
            for derog_id in self._fuzzy_scan(traveler, snapshot, self._text_distance_match,
                                             'text distance', found, batch_id):
                if derog_id not in found:
                    hits.append(MatchHit(derog_id, TEXT_DISTANCE_CLAUSE_LABEL, EXACT_CONFIDENCE,
                                         snapshot.watch_list_name))
                    found.add(derog_id)

        if not hits:
            logger.debug("traveler %s has no matches.", safe_id)
        return TravelerResponse(traveler_id, hits)

    def _fuzzy_scan(
        self,
        traveler: AttributeRecord,
        snapshot: MatchingSnapshot,
        predicate: Callable[[AttributeRecord, AttributeRecord], bool],
        scan_name: str,
        exclude: Collection[str],
        batch_id: Optional[str] = None
    ) -> List[str]:
        """Scan the whole watch list with a pairwise predicate

        Identifiers in ``exclude`` are skipped since text distance is the
        expensive part of the comparison.
        """
        deadline_ms = self.config.performance.fuzzy_scan_deadline_ms
        start = time.perf_counter()
        matched: List[str] = []
        seen = set()
        total = len(snapshot.watch_list)
        for position, derog in enumerate(snapshot.watch_list):
            if deadline_ms and (time.perf_counter() - start) * 1000 > deadline_ms:
                self.audit.log_deadline_exceeded(traveler.get(TRAVELER_ID, ''), scan_name,
                                                 deadline_ms, position, total, batch_id=batch_id)
                break
            derog_id = derog[DEROG_ID]
            if derog_id in exclude or derog_id in seen:
                continue
            if predicate(traveler, derog):
                matched.append(derog_id)
                seen.add(derog_id)
        return matched

    def _phonetic_match(self, traveler: AttributeRecord, derog: AttributeRecord) -> bool:
        code = traveler.get(DERIVED_PHONETIC_CODE, '')
        if not code or code != derog.get(DERIVED_PHONETIC_CODE, ''):
            return False
        if self.scorer.good_text_distance(traveler.get(DERIVED_FULL_NAME, ''), derog.get(DERIVED_FULL_NAME, '')):
            logger.info("Text distance hit for traveler=%s, derog=%s.",
                        sanitize_for_logging(traveler.get(DERIVED_FULL_NAME)),
                        sanitize_for_logging(derog.get(DERIVED_FULL_NAME)))
            return True
        return False

    def _text_distance_match(self, traveler: AttributeRecord, derog: AttributeRecord) -> bool:
        agreeing = [
            attr for attr in (DERIVED_DOB, DERIVED_CITIZENSHIP)
            if traveler.get(attr, '') and traveler.get(attr, '') == derog.get(attr, '')
        ]
        if not agreeing:
            return False
        if self.scorer.good_text_distance(traveler.get(DERIVED_FULL_NAME, ''), derog.get(DERIVED_FULL_NAME, '')):
            logger.info("Text distance hit for traveler=%s, derog=%s, and %s.",
                        sanitize_for_logging(traveler.get(DERIVED_FULL_NAME)),
                        sanitize_for_logging(derog.get(DERIVED_FULL_NAME)),
                        agreeing[0])
            return True
        return False


def load_records(path: str) -> List[Dict[str, str]]:
    """Load attribute records from a CSV file or a JSON list of objects"""
    file_path = Path(path)
    with open(file_path, 'r', encoding='utf-8') as f:
        if file_path.suffix.lower() == '.json':
            data = json.load(f)
            if not isinstance(data, list):
                raise ValueError(f"{file_path} must contain a JSON list of records")
            return data
        return [dict(row) for row in csv.DictReader(f)]


def screen_files(screener: DerogScreener, watch_list_path: str, travelers_path: str) -> Dict[str, Any]:
    """Initialize from a watch-list file and screen a traveler file

    Returns:
        Summary dictionary with the MatchingResult under 'result'
    """
    screener.initialize(load_records(watch_list_path))
    travelers = load_records(travelers_path)
    result = screener.match(travelers)

    return {
        'screening_info': {
            'date': datetime.now(timezone.utc).isoformat(),
            'watch_list': str(watch_list_path),
            'travelers_file': str(travelers_path),
            'total_records': len(travelers),
            'total_travelers': len(result.responses),
            'total_hits': result.total_hits,
            'accuracy_mode': screener.snapshot.mode.value,
            'watch_list_initialized_at': screener.snapshot.initialized_at,
            'algorithm_version': screener.config.algorithm.version
        },
        'result': result.to_dict()
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Screen travelers against a derog watch list")
    parser.add_argument('--watch-list', required=True, help="Watch-list CSV or JSON file")
    parser.add_argument('--travelers', required=True, help="Traveler CSV or JSON file")
    parser.add_argument('--config', default=None, help="Path to config.yaml")
    parser.add_argument('--mode', default=None, help="Accuracy mode override")
    parser.add_argument('--output', default=None, help="Write the JSON summary here")
    args = parser.parse_args(argv)

    try:
        config = ConfigManager(args.config)
        if args.mode:
            config.set_accuracy_mode(args.mode)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2
    logging.getLogger().setLevel(config.logging.level)

    screener = DerogScreener(config=config)
    summary = screen_files(screener, args.watch_list, args.travelers)

    payload = json.dumps(summary, indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(payload, encoding='utf-8')
        logger.info("Summary saved: %s", args.output)
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
