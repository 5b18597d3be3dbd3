from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, Boolean
from peer_consult.database import Base


class Patient(Base):
    """
    Display projection of a patient case.
    The clinical questionnaire lives elsewhere; only what consultations show is kept here.
    """
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    doctor_id = Column(String, nullable=False, index=True)

    name = Column(String, nullable=True)
    hospital = Column(String, nullable=True)

    submit_status = Column(Boolean, default=False)
    outcome_status = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
