"""
Doctor read-model assembly.
Resolves doctor display cards, latest scores and patient-case counts in batched
queries so callers never walk relationships row by row.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from peer_consult.models.patient import Patient
from peer_consult.models.score import DoctorScore
from peer_consult.models.user import User


@dataclass
class DoctorStats:
    score: int = 0
    patients_count: int = 0


def load_doctors(db: Session, doctor_ids: Iterable[str]) -> Dict[str, User]:
    ids = set(doctor_ids)
    if not ids:
        return {}
    return {user.id: user for user in db.query(User).filter(User.id.in_(ids)).all()}


def load_doctor_stats(db: Session, doctor_ids: Iterable[str]) -> Dict[str, DoctorStats]:
    """Latest score (missing -> 0) and owned patient count for each doctor id"""
    ids = set(doctor_ids)
    stats = {doctor_id: DoctorStats() for doctor_id in ids}
    if not ids:
        return stats

    score_rows = (
        db.query(DoctorScore.doctor_id, DoctorScore.score)
        .filter(DoctorScore.doctor_id.in_(ids))
        .order_by(DoctorScore.created_at.asc(), DoctorScore.id.asc())
        .all()
    )
    # Ascending order: the newest row per doctor is written last
    for doctor_id, score in score_rows:
        stats[doctor_id].score = score or 0

    count_rows = (
        db.query(Patient.doctor_id, func.count(Patient.id))
        .filter(Patient.doctor_id.in_(ids))
        .group_by(Patient.doctor_id)
        .all()
    )
    for doctor_id, count in count_rows:
        stats[doctor_id].patients_count = count

    return stats


def doctor_card(user: Optional[User]) -> Dict[str, Any]:
    """Short display fields shown next to a consultation"""
    if user is None:
        return {
            "fname": None,
            "lname": None,
            "workingplace": None,
            "image": None,
            "is_verified": False,
        }
    return {
        "fname": user.first_name,
        "lname": user.last_name,
        "workingplace": user.workplace,
        "image": user.image_url,
        "is_verified": user.is_verified,
    }


def doctor_profile(user: User, stats: DoctorStats) -> Dict[str, Any]:
    """Contact card with ranking fields, used by search results and member lists"""
    return {
        "id": user.id,
        "name": user.first_name,
        "lname": user.last_name,
        "email": user.email,
        "phone": user.phone_number,
        "specialty": user.specialty,
        "workingplace": user.workplace,
        "image": user.image_url,
        "verification_status": user.verification_status,
        "is_verified": user.is_verified,
        "score": stats.score,
        "patients_count": str(stats.patients_count),
    }
