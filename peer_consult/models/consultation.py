from datetime import datetime

from sqlalchemy import (
    Column, String, DateTime, Text, Integer, Boolean, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from peer_consult.database import Base


class ConsultationStatus:
    PENDING = "pending"
    COMPLETE = "complete"


class ParticipantStatus:
    NOT_REPLIED = "not_replied"
    REPLIED = "replied"


class Consultation(Base):
    """A doctor asking one or more peers for advice on one patient"""
    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requesting_doctor_id = Column(String, nullable=False, index=True)
    patient_id = Column(Integer, nullable=False, index=True)

    consult_message = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=ConsultationStatus.PENDING, index=True)
    is_open = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    participants = relationship(
        "ConsultationParticipant",
        back_populates="consultation",
        cascade="all, delete-orphan",
        order_by="ConsultationParticipant.id",
    )


class ConsultationParticipant(Base):
    """One invited doctor's obligation to answer a consultation"""
    __tablename__ = "consultation_participants"
    __table_args__ = (
        UniqueConstraint("consultation_id", "doctor_id", name="uq_consultation_participant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    consultation_id = Column(
        Integer, ForeignKey("consultations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    doctor_id = Column(String, nullable=False, index=True)

    reply = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=ParticipantStatus.NOT_REPLIED)
    replied_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    consultation = relationship("Consultation", back_populates="participants")
    replies = relationship(
        "ConsultationReply",
        cascade="all, delete-orphan",
        order_by="ConsultationReply.id",
    )


class ConsultationReply(Base):
    """Append-only history of every reply a participant has sent"""
    __tablename__ = "consultation_replies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(
        Integer, ForeignKey("consultation_participants.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    reply = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
