from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from peer_consult.database import Base


VERIFIED_STATUS = "Verified"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, default="doctor")
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)

    specialty = Column(String, nullable=True)
    workplace = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    # Syndicate card review state, e.g. "Pending", "Verified", "Rejected"
    verification_status = Column(String, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VERIFIED_STATUS

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.email
