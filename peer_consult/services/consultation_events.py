"""
Notify-events emitted by the consultation coordinator.
Each event carries identities only; dispatchers render their own copy.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ConsultationCreated:
    """A doctor was invited to answer a consultation"""
    consultation_id: int
    requester_id: str
    invitee_id: str
    patient_id: int

    event_type = "consultation_created"

    @property
    def recipient_id(self) -> str:
        return self.invitee_id

    @property
    def actor_id(self) -> str:
        return self.requester_id

    def to_dict(self) -> Dict[str, Any]:
        return {"event_type": self.event_type, **asdict(self)}


@dataclass(frozen=True)
class ConsultationReplied:
    """An invited doctor replied; the requester is told"""
    consultation_id: int
    responder_id: str
    requester_id: str
    patient_id: Optional[int]

    event_type = "consultation_replied"

    @property
    def recipient_id(self) -> str:
        return self.requester_id

    @property
    def actor_id(self) -> str:
        return self.responder_id

    def to_dict(self) -> Dict[str, Any]:
        return {"event_type": self.event_type, **asdict(self)}
