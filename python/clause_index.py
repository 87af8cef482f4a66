"""
Clause index over a normalized watch list

For each clause, maps the concatenation of a record's clause values to the
set of watch-list identifiers sharing that exact concatenation, giving an
O(1) exact-match lookup per clause.
"""

import logging
from typing import Dict, Set, Sequence, FrozenSet, Tuple

from models import AttributeRecord, Clause, DEROG_ID

logger = logging.getLogger(__name__)


class ClauseIndex:
    """Read-only per-clause lookup tables built from one watch-list snapshot"""

    def __init__(
        self,
        clauses: Sequence[Clause],
        values_to_ids: Dict[Clause, Dict[str, FrozenSet[str]]],
        eligible_records: Dict[Clause, Tuple[AttributeRecord, ...]],
        separator: str = ""
    ):
        self.clauses: Tuple[Clause, ...] = tuple(clauses)
        self._values_to_ids = values_to_ids
        self._eligible = eligible_records
        self.separator = separator

    def lookup(self, clause: Clause, key: str) -> FrozenSet[str]:
        """Watch-list identifiers indexed under ``key`` for ``clause``"""
        if not key:
            return frozenset()
        return self._values_to_ids.get(clause, {}).get(key, frozenset())

    def eligible(self, clause: Clause) -> Tuple[AttributeRecord, ...]:
        """Watch-list records carrying a non-empty value for every clause attribute"""
        return self._eligible.get(clause, ())

    def __len__(self) -> int:
        return sum(len(table) for table in self._values_to_ids.values())


def is_eligible(record: AttributeRecord, clause: Clause) -> bool:
    return all(record.get(attr, '') != '' for attr in clause.attributes)


def partition_by_clause(watch_list: Sequence[AttributeRecord],
                        clauses: Sequence[Clause]) -> Dict[Clause, Tuple[AttributeRecord, ...]]:
    """Split the watch list into the records each clause fully applies to"""
    return {
        clause: tuple(rec for rec in watch_list if is_eligible(rec, clause))
        for clause in clauses
    }


def index_clause(watch_list: Sequence[AttributeRecord], clause: Clause,
                 separator: str = "") -> Dict[str, FrozenSet[str]]:
    """Build the value -> identifiers table for a single clause"""
    table: Dict[str, Set[str]] = {}
    for rec in watch_list:
        key = clause.key(rec, separator)
        if key:
            table.setdefault(key, set()).add(rec[DEROG_ID])
    return {key: frozenset(ids) for key, ids in table.items()}


def build_clause_index(watch_list: Sequence[AttributeRecord], clauses: Sequence[Clause],
                       separator: str = "") -> ClauseIndex:
    """Build the clause index for a normalized watch list

    Every record participates in every clause for which its clause key is
    non-empty; records missing some clause attributes use the present ones.

    Args:
        watch_list: Normalized watch-list records, each carrying ``derog_id``
        clauses: Active clause set
        separator: Joiner between clause values ("" for raw concatenation)

    Returns:
        ClauseIndex for the given inputs
    """
    values_to_ids = {clause: index_clause(watch_list, clause, separator) for clause in clauses}
    eligible = partition_by_clause(watch_list, clauses)

    for clause in clauses:
        logger.info("Clause %s: %d keys, %d fully eligible records",
                    clause.label, len(values_to_ids[clause]), len(eligible[clause]))

    return ClauseIndex(clauses, values_to_ids, eligible, separator)
