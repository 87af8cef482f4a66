"""
Configuration Management Module
Loads and validates QuickMatch configuration from config.yaml
"""

import re
import yaml
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)


class AccuracyMode(Enum):
    """Accuracy modes trading recall for precision.

    HIGH_RECALL finds as many derogatory matches as possible at the cost of
    more false positives. HIGH_PRECISION suggests fewer, more likely hits.
    BALANCED sits between the two. BALANCED_WITH_TEXT_DISTANCE adds a name
    text-distance pass combined with DOB or citizenship agreement on top of
    the Balanced clauses. GTAS_DEFAULT adds a phonetic + text-distance pass
    to clause matching.
    """
    HIGH_RECALL = "HighRecall"
    HIGH_PRECISION = "HighPrecision"
    BALANCED = "Balanced"
    BALANCED_WITH_TEXT_DISTANCE = "BalancedWithTextDistance"
    GTAS_DEFAULT = "GTAS_DEFAULT"

    @property
    def phonetic_pass(self) -> bool:
        return self is AccuracyMode.GTAS_DEFAULT

    @property
    def text_distance_pass(self) -> bool:
        return self is AccuracyMode.BALANCED_WITH_TEXT_DISTANCE

    @property
    def clause_source(self) -> 'AccuracyMode':
        """Mode whose clause set is used when this mode has none of its own"""
        if self is AccuracyMode.BALANCED_WITH_TEXT_DISTANCE:
            return AccuracyMode.BALANCED
        return self

    @classmethod
    def parse(cls, value: str) -> 'AccuracyMode':
        """Resolve a mode from its configured value or enum name"""
        for mode in cls:
            if value == mode.value or value == mode.name:
                return mode
        raise ConfigurationError(
            f"Unknown accuracy mode '{value}'. Expected one of: "
            f"{', '.join(m.value for m in cls)}"
        )


DEFAULT_CLAUSES: Dict[str, List[List[str]]] = {
    'HighRecall': [
        ['phonetic_code'],
        ['full_name', 'date_of_birth'],
        ['document_id'],
        ['last_name', 'date_of_birth', 'gender_code'],
        ['first_name', 'last_name', 'citizenship_country_code'],
    ],
    'HighPrecision': [
        ['full_name', 'date_of_birth', 'gender_code'],
        ['document_id', 'document_country_code', 'document_type'],
        ['full_name', 'date_of_birth', 'citizenship_country_code'],
    ],
    'Balanced': [
        ['full_name', 'date_of_birth'],
        ['document_id', 'document_country_code'],
        ['first_name', 'last_name', 'date_of_birth'],
        ['phonetic_code', 'date_of_birth'],
    ],
    'GTAS_DEFAULT': [
        ['first_name', 'last_name', 'date_of_birth'],
        ['document_id', 'document_type'],
        ['full_name', 'citizenship_country_code'],
        ['phonetic_code'],
    ],
}


@dataclass
class MatchingConfig:
    """Matching configuration parameters"""
    accuracy_mode: str = AccuracyMode.GTAS_DEFAULT.value
    jaro_winkler_threshold: float = 0.9
    phonetic_code_max_length: int = 4
    clause_key_separator: str = ""
    watch_list_name_attribute: str = "watch_list_name"
    clauses: Dict[str, List[List[str]]] = field(
        default_factory=lambda: {mode: [list(c) for c in clauses] for mode, clauses in DEFAULT_CLAUSES.items()}
    )


@dataclass
class NormalizationConfig:
    """Attribute renaming and cleansing"""
    filter_out_regex: str = r"[^\w\s\-/]"
    string_attributes: List[str] = field(default_factory=lambda: [
        'first_name', 'middle_name', 'last_name', 'gender_code',
        'citizenship_country_code', 'document_country_code',
        'document_type', 'document_id'
    ])
    name_parts: List[str] = field(default_factory=lambda: ['first_name', 'middle_name', 'last_name'])
    attribute_renames: Dict[str, str] = field(default_factory=lambda: {
        'gender_code': 'GNDR_CD',
        'citizenship_country_code': 'CTZNSHP_CTRY_CD',
        'document_country_code': 'DOC_CTRY_CD',
        'document_type': 'DOC_TYP_NM',
        'document_id': 'DOC_ID',
        'date_of_birth': 'DOB_Date',
        'watch_list_name': 'watchListName',
    })
    derog_id_alias: str = "derogId"
    traveler_id_alias: str = "gtasId"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    audit_log_dir: str = "logs"
    audit_to_file: bool = False
    console: bool = False


@dataclass
class PerformanceConfig:
    """Performance configuration"""
    concurrent_matching: bool = False
    max_threads: int = 4
    parallel_batch_threshold: int = 500
    fuzzy_scan_deadline_ms: int = 0


@dataclass
class AlgorithmConfig:
    """Algorithm version information"""
    version: str = "1.0.0"
    name: str = "QuickMatch Derog Screener"
    last_updated: str = "2024-01-01"


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.matching: MatchingConfig = MatchingConfig()
        self.normalization: NormalizationConfig = NormalizationConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.performance: PerformanceConfig = PerformanceConfig()
        self.algorithm: AlgorithmConfig = AlgorithmConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._validate()

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_matching()
        self._parse_normalization()
        self._parse_logging()
        self._parse_performance()
        self._parse_algorithm()
        self._validate()

    def _section(self, name: str) -> Dict[str, Any]:
        cfg = self._raw_config.get(name) or {}
        if not isinstance(cfg, dict):
            raise ConfigurationError(f"Section '{name}' must be a mapping")
        return cfg

    def _parse_matching(self) -> None:
        """Parse matching configuration"""
        cfg = self._section('matching')
        self.matching = MatchingConfig(
            accuracy_mode=cfg.get('accuracy_mode', self.matching.accuracy_mode),
            jaro_winkler_threshold=cfg.get('jaro_winkler_threshold', 0.9),
            phonetic_code_max_length=cfg.get('phonetic_code_max_length', 4),
            clause_key_separator=cfg.get('clause_key_separator', "") or "",
            watch_list_name_attribute=cfg.get('watch_list_name_attribute', 'watch_list_name'),
            clauses=cfg.get('clauses', self.matching.clauses)
        )

    def _parse_normalization(self) -> None:
        """Parse normalization configuration"""
        cfg = self._section('normalization')
        self.normalization = NormalizationConfig(
            filter_out_regex=cfg.get('filter_out_regex', self.normalization.filter_out_regex),
            string_attributes=cfg.get('string_attributes', self.normalization.string_attributes),
            name_parts=cfg.get('name_parts', self.normalization.name_parts),
            attribute_renames=cfg.get('attribute_renames', self.normalization.attribute_renames),
            derog_id_alias=cfg.get('derog_id_alias', 'derogId'),
            traveler_id_alias=cfg.get('traveler_id_alias', 'gtasId')
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._section('logging')
        self.logging = LoggingConfig(
            level=cfg.get('level', 'INFO'),
            format=cfg.get('format', self.logging.format),
            audit_log_dir=cfg.get('audit_log_dir', 'logs'),
            audit_to_file=cfg.get('audit_to_file', False),
            console=cfg.get('console', False)
        )

    def _parse_performance(self) -> None:
        """Parse performance configuration"""
        cfg = self._section('performance')
        self.performance = PerformanceConfig(
            concurrent_matching=cfg.get('concurrent_matching', False),
            max_threads=cfg.get('max_threads', 4),
            parallel_batch_threshold=cfg.get('parallel_batch_threshold', 500),
            fuzzy_scan_deadline_ms=cfg.get('fuzzy_scan_deadline_ms', 0)
        )

    def _parse_algorithm(self) -> None:
        """Parse algorithm configuration"""
        cfg = self._section('algorithm')
        self.algorithm = AlgorithmConfig(
            version=str(cfg.get('version', '1.0.0')),
            name=cfg.get('name', 'QuickMatch Derog Screener'),
            last_updated=str(cfg.get('last_updated', '2024-01-01'))
        )

    @property
    def mode(self) -> AccuracyMode:
        return AccuracyMode.parse(self.matching.accuracy_mode)

    def clauses_for_mode(self, mode: AccuracyMode) -> List[List[str]]:
        """Return the ordered clause list configured for an accuracy mode

        Raises:
            ConfigurationError: If neither the mode nor its clause source has clauses
        """
        clauses = self.matching.clauses
        if mode.value in clauses:
            return clauses[mode.value]
        if mode.clause_source.value in clauses:
            return clauses[mode.clause_source.value]
        raise ConfigurationError(f"No clauses configured for accuracy mode '{mode.value}'")

    def set_accuracy_mode(self, value: str) -> AccuracyMode:
        """Switch the selected accuracy mode, validating it against the clause table"""
        previous = self.matching.accuracy_mode
        self.matching.accuracy_mode = value
        try:
            self._validate()
        except ConfigurationError:
            self.matching.accuracy_mode = previous
            raise
        return self.mode

    def _validate(self) -> None:
        """Validate configuration values

        Raises:
            ConfigurationError: On any inconsistent or unusable setting
        """
        mode = self.mode

        if not isinstance(self.matching.clauses, dict):
            raise ConfigurationError("matching.clauses must map accuracy modes to clause lists")
        for mode_name, clause_list in self.matching.clauses.items():
            if not isinstance(clause_list, list):
                raise ConfigurationError(f"Clauses for '{mode_name}' must be a list")
            for clause in clause_list:
                if not isinstance(clause, list) or not clause:
                    raise ConfigurationError(f"Clause {clause!r} for '{mode_name}' must be a non-empty list")
                if not all(isinstance(attr, str) and attr for attr in clause):
                    raise ConfigurationError(f"Clause {clause!r} for '{mode_name}' holds invalid attribute names")
        if not self.clauses_for_mode(mode):
            raise ConfigurationError(f"Clause list for accuracy mode '{mode.value}' is empty")

        threshold = self.matching.jaro_winkler_threshold
        if not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(f"jaro_winkler_threshold must be within [0, 1], got {threshold!r}")
        if not isinstance(self.matching.phonetic_code_max_length, int) or self.matching.phonetic_code_max_length < 1:
            raise ConfigurationError("phonetic_code_max_length must be a positive integer")

        renames = self.normalization.attribute_renames
        if not isinstance(renames, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in renames.items()):
            raise ConfigurationError("normalization.attribute_renames must map attribute names to aliases")
        for key in ('string_attributes', 'name_parts'):
            values = getattr(self.normalization, key)
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise ConfigurationError(f"normalization.{key} must be a list of attribute names")

        pattern = self.normalization.filter_out_regex
        if not isinstance(pattern, str) or not pattern:
            raise ConfigurationError("normalization.filter_out_regex is required")
        try:
            re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(f"Invalid filter_out_regex '{pattern}': {e}")

        if not isinstance(self.performance.max_threads, int) or self.performance.max_threads < 1:
            raise ConfigurationError("performance.max_threads must be a positive integer")
        if self.performance.fuzzy_scan_deadline_ms < 0:
            raise ConfigurationError("performance.fuzzy_scan_deadline_ms cannot be negative")

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        return {
            'matching': {
                'accuracy_mode': self.matching.accuracy_mode,
                'jaro_winkler_threshold': self.matching.jaro_winkler_threshold,
                'phonetic_code_max_length': self.matching.phonetic_code_max_length,
                'clause_key_separator': self.matching.clause_key_separator,
                'clauses': self.matching.clauses
            },
            'normalization': {
                'filter_out_regex': self.normalization.filter_out_regex,
                'string_attributes': self.normalization.string_attributes,
                'name_parts': self.normalization.name_parts,
                'attribute_renames': self.normalization.attribute_renames,
                'derog_id_alias': self.normalization.derog_id_alias,
                'traveler_id_alias': self.normalization.traveler_id_alias
            },
            'performance': {
                'concurrent_matching': self.performance.concurrent_matching,
                'max_threads': self.performance.max_threads,
                'parallel_batch_threshold': self.performance.parallel_batch_threshold,
                'fuzzy_scan_deadline_ms': self.performance.fuzzy_scan_deadline_ms
            },
            'algorithm': {
                'version': self.algorithm.version,
                'name': self.algorithm.name,
                'last_updated': self.algorithm.last_updated
            }
        }


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)
