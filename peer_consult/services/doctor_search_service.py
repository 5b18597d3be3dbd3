"""
Consult doctor search and ranking.

A candidate matches when ANY whitespace-separated token appears (case-insensitive
substring) in their first name, last name, email or phone. Matches are ranked by
latest score descending (missing score counts as 0), then by patient-case count
descending; ties keep the directory order.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from peer_consult.config import settings
from peer_consult.models.user import User
from peer_consult.services.consultation_errors import ValidationError
from peer_consult.services.doctor_directory_service import (
    DoctorStats,
    doctor_profile,
    load_doctor_stats,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (User.first_name, User.last_name, User.email, User.phone_number)


@dataclass
class DoctorCandidate:
    user: User
    stats: DoctorStats

    def to_dict(self) -> Dict[str, Any]:
        return doctor_profile(self.user, self.stats)


def tokenize_query(query_text: str) -> List[str]:
    return [token for token in (query_text or "").split() if token]


def _like_pattern(token: str) -> str:
    escaped = token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def rank_candidates(candidates: List[DoctorCandidate]) -> List[DoctorCandidate]:
    """Pure sort over already-resolved scores; Python's sort is stable"""
    return sorted(
        candidates,
        key=lambda c: (-(c.stats.score or 0), -(c.stats.patients_count or 0)),
    )


class DoctorSearchRanker:
    """Finds and orders doctors a requester might consult"""

    def __init__(self, db: Session):
        self.db = db

    def search(
        self,
        query_text: str,
        calling_doctor_id: str,
        caller_is_privileged: bool = False
    ) -> List[Dict[str, Any]]:
        tokens = tokenize_query(query_text)
        if not tokens:
            raise ValidationError("Search query must contain at least one keyword")

        token_filters = [
            or_(*[field.ilike(_like_pattern(token), escape="\\") for field in SEARCH_FIELDS])
            for token in tokens
        ]

        query = (
            self.db.query(User)
            .filter(User.role.in_(settings.CONSULT_CANDIDATE_ROLES))
            .filter(or_(*token_filters))
        )
        if not caller_is_privileged:
            query = query.filter(User.id != calling_doctor_id)

        users = query.order_by(User.id.asc()).all()
        stats = load_doctor_stats(self.db, [u.id for u in users])

        ranked = rank_candidates([DoctorCandidate(user=u, stats=stats[u.id]) for u in users])

        logger.info(
            f"Consult search by {calling_doctor_id}: {len(tokens)} keyword(s), {len(ranked)} match(es)"
        )
        return [candidate.to_dict() for candidate in ranked]
