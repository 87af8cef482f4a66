"""
Data model for QuickMatch derog screening

Records are plain ``Dict[str, str]`` mappings (attribute name -> value);
the types below describe clauses, hits and the result handed to callers.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Tuple, Optional

from text_utils import format_list

AttributeRecord = Dict[str, str]

DERIVED_FULL_NAME = 'full_name'
DERIVED_PHONETIC_CODE = 'phonetic_code'
DERIVED_GENDER = 'gender_code'
DERIVED_DOB = 'date_of_birth'
DERIVED_CITIZENSHIP = 'citizenship_country_code'
DEROG_ID = 'derog_id'
TRAVELER_ID = 'traveler_id'

PHONETIC_CONFIDENCE = 0.9
EXACT_CONFIDENCE = 1.0
TEXT_DISTANCE_CLAUSE_LABEL = "[full_name text distance, DOB_Date OR CTZNSHP_CTRY_CD]"


@dataclass(frozen=True)
class Clause:
    """Ordered attribute names whose concatenated values form an exact-match key"""
    attributes: Tuple[str, ...]

    def __post_init__(self):
        if not self.attributes:
            raise ValueError("Clause must name at least one attribute")

    @classmethod
    def of(cls, attributes) -> 'Clause':
        return cls(tuple(attributes))

    @property
    def label(self) -> str:
        return format_list(self.attributes)

    @property
    def is_phonetic_only(self) -> bool:
        return self.attributes == (DERIVED_PHONETIC_CODE,)

    @property
    def confidence(self) -> float:
        return PHONETIC_CONFIDENCE if self.is_phonetic_only else EXACT_CONFIDENCE

    def values(self, record: AttributeRecord) -> List[str]:
        """Values of the clause attributes present on the record, in clause order"""
        return [record[attr] for attr in self.attributes if attr in record]

    def key(self, record: AttributeRecord, separator: str = "") -> str:
        """Clause key for a record; empty when no clause attribute has a value"""
        values = self.values(record)
        if not any(values):
            return ""
        return separator.join(values)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class MatchHit:
    """A single watch-list identifier credited to a traveler"""
    derog_id: str
    clause: str
    confidence: float
    watch_list_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'derog_id': self.derog_id,
            'clause': self.clause,
            'confidence': self.confidence,
            'watch_list_name': self.watch_list_name
        }


@dataclass
class TravelerResponse:
    """Hits for one traveler identity, distinct by watch-list identifier"""
    traveler_id: str
    hits: List[MatchHit] = field(default_factory=list)

    @property
    def derog_ids(self) -> List[str]:
        return [hit.derog_id for hit in self.hits]

    def get_hit(self, derog_id: str) -> Optional[MatchHit]:
        for hit in self.hits:
            if hit.derog_id == derog_id:
                return hit
        return None

    def merge(self, other: 'TravelerResponse') -> int:
        """Add hits from another response for the same traveler

        Returns:
            Number of watch-list identifiers that were new to this response
        """
        known = set(self.derog_ids)
        added = 0
        for hit in other.hits:
            if hit.derog_id not in known:
                self.hits.append(hit)
                known.add(hit.derog_id)
                added += 1
        return added

    def to_dict(self) -> Dict[str, Any]:
        return {
            'traveler_id': self.traveler_id,
            'derog_ids': self.derog_ids,
            'hits': [hit.to_dict() for hit in self.hits]
        }


@dataclass
class MatchingResult:
    """Terminal output of a match call"""
    total_hits: int
    responses: Dict[str, TravelerResponse] = field(default_factory=dict)

    def get(self, traveler_id: str) -> Optional[TravelerResponse]:
        return self.responses.get(traveler_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_hits': self.total_hits,
            'responses': {tid: resp.to_dict() for tid, resp in self.responses.items()}
        }
