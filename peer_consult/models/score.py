from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer
from peer_consult.database import Base


class DoctorScore(Base):
    """Point total snapshots for a doctor; the newest row is the current score"""
    __tablename__ = "doctor_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    doctor_id = Column(String, nullable=False, index=True)
    score = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
