"""
Response aggregation

A traveler appears once per document/citizenship combination in a query
batch. Per-record responses are merged into one response per traveler
identity before the total hit count is taken.
"""

import logging
from typing import Dict, Iterable, Optional

from audit_logger import ScreeningAuditLogger, get_audit_logger
from models import MatchingResult, TravelerResponse
from text_utils import sanitize_for_logging

logger = logging.getLogger(__name__)


def aggregate(
    responses: Iterable[TravelerResponse],
    expected_ids: Optional[Iterable[str]] = None,
    audit: Optional[ScreeningAuditLogger] = None,
    batch_id: Optional[str] = None
) -> MatchingResult:
    """Merge per-record responses into one MatchingResult

    Args:
        responses: Per-record responses in batch order
        expected_ids: Traveler identities present in the query batch
        audit: Audit logger for data-integrity warnings
        batch_id: Correlation id attached to audit events

    Returns:
        MatchingResult with one response per traveler identity
    """
    merged: Dict[str, TravelerResponse] = {}
    for response in responses:
        existing = merged.get(response.traveler_id)
        if existing is None:
            merged[response.traveler_id] = TravelerResponse(response.traveler_id, list(response.hits))
        else:
            existing.merge(response)

    if expected_ids is not None:
        audit = audit or get_audit_logger()
        for traveler_id in dict.fromkeys(expected_ids):
            if traveler_id not in merged:
                logger.warning("Valid traveler with id %s was dropped from response list.",
                               sanitize_for_logging(traveler_id))
                audit.log_traveler_dropped(traveler_id, batch_id=batch_id)

    total_hits = sum(len(resp.derog_ids) for resp in merged.values())
    return MatchingResult(total_hits=total_hits, responses=merged)
