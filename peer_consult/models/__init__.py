from peer_consult.models.user import User
from peer_consult.models.score import DoctorScore
from peer_consult.models.patient import Patient
from peer_consult.models.consultation import (
    Consultation,
    ConsultationParticipant,
    ConsultationReply,
    ConsultationStatus,
    ParticipantStatus,
)
from peer_consult.models.notification import AppNotification

__all__ = [
    "User",
    "DoctorScore",
    "Patient",
    "Consultation",
    "ConsultationParticipant",
    "ConsultationReply",
    "ConsultationStatus",
    "ParticipantStatus",
    "AppNotification",
]
