"""
Record normalization for QuickMatch

Turns raw attribute records (watch-list entries or traveler queries) into
canonically keyed, cleansed records with derived ``full_name`` and
``phonetic_code`` fields. Per-record processing never raises: missing or
empty values degrade to empty strings.
"""

import logging
import re
from typing import Dict, List, Optional, Iterable

from config_manager import ConfigManager, ConfigurationError
from models import (
    AttributeRecord, DERIVED_FULL_NAME, DERIVED_PHONETIC_CODE, DERIVED_GENDER,
    DEROG_ID, TRAVELER_ID
)
from phonetic import PhoneticEncoder
from text_utils import as_value

logger = logging.getLogger(__name__)

VALID_GENDERS = ('M', 'F')


class RecordNormalizer:
    """Applies renames, case-folding, regex cleansing and name derivation"""

    def __init__(
        self,
        renames: Dict[str, str],
        filter_out_regex: str,
        string_attributes: Iterable[str],
        name_parts: Iterable[str] = ('first_name', 'middle_name', 'last_name'),
        encoder: Optional[PhoneticEncoder] = None
    ):
        """Initialize normalizer

        Args:
            renames: Canonical attribute -> incoming alias
            filter_out_regex: Pattern matching characters to strip from every value
            string_attributes: Attributes upper-cased before cleansing
            name_parts: Name attributes combined into full_name, in order
            encoder: Phonetic encoder for name parts

        Raises:
            ConfigurationError: If the cleansing regex is missing or invalid
        """
        if not filter_out_regex:
            raise ConfigurationError("A cleansing regex is required")
        try:
            self._filter = re.compile(filter_out_regex)
        except re.error as e:
            raise ConfigurationError(f"Invalid cleansing regex '{filter_out_regex}': {e}")
        self.renames = dict(renames)
        self.string_attributes = tuple(string_attributes)
        self.name_parts = tuple(name_parts)
        self.encoder = encoder or PhoneticEncoder()

    @classmethod
    def from_config(cls, config: ConfigManager, identity_field: str,
                    encoder: Optional[PhoneticEncoder] = None) -> 'RecordNormalizer':
        """Build a normalizer for one batch type

        The rename table is copied per batch and only the identity alias of
        that batch is added, so watch-list and traveler identity aliases never
        collide with each other.
        """
        norm = config.normalization
        renames = dict(norm.attribute_renames)
        if identity_field == DEROG_ID and norm.derog_id_alias:
            renames[DEROG_ID] = norm.derog_id_alias
        elif identity_field == TRAVELER_ID and norm.traveler_id_alias:
            renames[TRAVELER_ID] = norm.traveler_id_alias
        return cls(
            renames=renames,
            filter_out_regex=norm.filter_out_regex,
            string_attributes=norm.string_attributes,
            name_parts=norm.name_parts,
            encoder=encoder or PhoneticEncoder(config.matching.phonetic_code_max_length)
        )

    def rename(self, record: AttributeRecord) -> AttributeRecord:
        for canonical, alias in self.renames.items():
            if alias in record:
                value = record.pop(alias)
                record[canonical] = value
        return record

    def normalize(self, raw: Dict[str, object]) -> AttributeRecord:
        """Normalize one record; the input mapping is left untouched"""
        record: AttributeRecord = {str(k): as_value(v) for k, v in raw.items()}

        self.rename(record)

        for attribute in self.string_attributes:
            if attribute in record:
                record[attribute] = record[attribute].upper()

        for attribute, value in record.items():
            record[attribute] = self._filter.sub('', value)

        if record.get(DERIVED_GENDER, '') not in VALID_GENDERS:
            record[DERIVED_GENDER] = ''

        full_name: List[str] = []
        codes: List[str] = []
        for part in self.name_parts:
            value = record.get(part, '')
            if value:
                full_name.append(value.strip())
                code = self.encoder.encode(value)
                if code:
                    codes.append(code)
            else:
                record[part] = ''
        record[DERIVED_FULL_NAME] = ' '.join(p for p in full_name if p).strip()
        record[DERIVED_PHONETIC_CODE] = ' '.join(codes).strip()
        return record

    def normalize_batch(self, records: Iterable[Dict[str, object]]) -> List[AttributeRecord]:
        return [self.normalize(rec) for rec in records]
