"""
Notification Dispatchers
Deliver consultation notify-events. The coordinator treats every dispatcher as
best-effort: anything raised here is logged by the caller and never rolls back
consultation state.
"""

import logging
from typing import Callable, Dict, Tuple, Union

from sqlalchemy.orm import Session

from peer_consult.models.notification import AppNotification
from peer_consult.models.user import User
from peer_consult.services.consultation_events import ConsultationCreated, ConsultationReplied

logger = logging.getLogger(__name__)

ConsultationEvent = Union[ConsultationCreated, ConsultationReplied]

# event_type -> (localization key, title, body template)
_COPY: Dict[str, Tuple[str, str, str]] = {
    ConsultationCreated.event_type: (
        "consultation_request",
        "New consultation request",
        "{name} is seeking your advice on a patient case",
    ),
    ConsultationReplied.event_type: (
        "consultation_reply",
        "New reply on consultation",
        "{name} replied to your consultation",
    ),
}


class NotificationDispatcher:
    """Receives consultation events and performs delivery"""

    def dispatch(self, event: ConsultationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes events to the log only; used when no inbox is configured"""

    def dispatch(self, event: ConsultationEvent) -> None:
        logger.info(
            f"Consultation event for doctor {event.recipient_id}: {event.to_dict()}"
        )


class AppNotificationDispatcher(NotificationDispatcher):
    """
    Persists one in-app inbox entry per event.

    Uses its own session so a failed insert can never touch the coordinator's
    transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def dispatch(self, event: ConsultationEvent) -> None:
        localization_key, title, body_template = _COPY[event.event_type]

        db = self._session_factory()
        try:
            actor = db.query(User).filter(User.id == event.actor_id).first()
            actor_name = f"Dr. {actor.display_name}" if actor else "A colleague"

            notification = AppNotification(
                doctor_id=event.recipient_id,
                type="Consultation",
                type_id=event.consultation_id,
                localization_key=localization_key,
                actor_doctor_id=event.actor_id,
                patient_id=event.patient_id,
                title=title,
                body=body_template.format(name=actor_name),
            )
            db.add(notification)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
