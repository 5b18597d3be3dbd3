from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, Text
from peer_consult.database import Base


class AppNotification(Base):
    """In-app inbox entry shown to a doctor"""
    __tablename__ = "app_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    doctor_id = Column(String, nullable=False, index=True)

    type = Column(String, nullable=False)
    type_id = Column(Integer, nullable=True)
    localization_key = Column(String, nullable=False)
    actor_doctor_id = Column(String, nullable=True)
    patient_id = Column(Integer, nullable=True)

    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)

    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
