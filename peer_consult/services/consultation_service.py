"""
Consultation Coordinator
Owns the multi-doctor consultation lifecycle: creation with fan-out to every
invited doctor, per-participant replies, and completion aggregation.

A consultation is complete exactly when every participant has replied. The
check-and-flip runs under a per-consultation lock plus a row lock on the
consultation, so concurrent replies from different participants cannot leave a
fully-answered consultation pending. Notifications are dispatched after commit
and are best-effort.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from peer_consult.config import settings
from peer_consult.models.consultation import (
    Consultation,
    ConsultationParticipant,
    ConsultationReply,
    ConsultationStatus,
    ParticipantStatus,
)
from peer_consult.models.user import User
from peer_consult.services.consultation_errors import (
    AccessDeniedError,
    ConsultationError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from peer_consult.services.consultation_events import ConsultationCreated, ConsultationReplied
from peer_consult.services.consultation_locks import ConsultationLockRegistry, consultation_locks
from peer_consult.services.doctor_directory_service import (
    doctor_card,
    doctor_profile,
    load_doctor_stats,
    load_doctors,
)
from peer_consult.services.notification_dispatcher import NotificationDispatcher
from peer_consult.services.patient_snapshot_service import (
    PatientSnapshotProvider,
    SqlPatientSnapshotProvider,
)

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class ReplySummary:
    consultation_id: int
    doctor_id: str
    reply: str
    all_replied: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consultation_id": self.consultation_id,
            "doctor_id": self.doctor_id,
            "reply": self.reply,
            "all_replied": self.all_replied,
        }


def serialize_consultation(consultation: Consultation) -> Dict[str, Any]:
    return {
        "id": consultation.id,
        "doctor_id": consultation.requesting_doctor_id,
        "patient_id": consultation.patient_id,
        "consult_message": consultation.consult_message,
        "status": consultation.status,
        "is_open": consultation.is_open,
        "created_at": _iso(consultation.created_at),
        "updated_at": _iso(consultation.updated_at),
        "participants": [
            {
                "id": p.id,
                "consult_doctor_id": p.doctor_id,
                "reply": p.reply,
                "status": p.status,
            }
            for p in consultation.participants
        ],
    }


class ConsultationCoordinator:
    def __init__(
        self,
        db: Session,
        dispatcher: NotificationDispatcher,
        patients: Optional[PatientSnapshotProvider] = None,
        locks: Optional[ConsultationLockRegistry] = None
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.patients = patients or SqlPatientSnapshotProvider(db)
        self.locks = locks or consultation_locks

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    def create(
        self,
        requesting_doctor_id: str,
        patient_id: int,
        message: str,
        invited_doctor_ids: Sequence[str]
    ) -> Consultation:
        """
        Persist a pending consultation and one not-replied participant per
        invited doctor, then emit one created event per invitee.
        """
        if not message or not message.strip():
            raise ValidationError("Consultation message is required")
        invited = list(invited_doctor_ids or [])
        if not invited:
            raise ValidationError("At least one consulting doctor is required")
        if any(not d or not d.strip() for d in invited):
            raise ValidationError("Consulting doctor ids must not be blank")
        if len(set(invited)) != len(invited):
            raise ValidationError("A doctor can only be invited once per consultation")
        if requesting_doctor_id in invited:
            raise ValidationError("You cannot request a consultation from yourself")

        try:
            self.patients.get_snapshot(patient_id)
            self._require_doctors_exist(invited)

            consultation = Consultation(
                requesting_doctor_id=requesting_doctor_id,
                patient_id=patient_id,
                consult_message=message,
                status=ConsultationStatus.PENDING,
                is_open=True,
            )
            for doctor_id in invited:
                consultation.participants.append(
                    ConsultationParticipant(doctor_id=doctor_id, status=ParticipantStatus.NOT_REPLIED)
                )

            self.db.add(consultation)
            self.db.commit()
            self.db.refresh(consultation)
        except ConsultationError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to create consultation for patient {patient_id} "
                f"by doctor {requesting_doctor_id}: {e}"
            )
            raise UnexpectedError("Failed to create consultation") from e

        logger.info(
            f"Consultation {consultation.id} created by {requesting_doctor_id} "
            f"with {len(invited)} invitee(s)"
        )

        for doctor_id in invited:
            self._emit(ConsultationCreated(
                consultation_id=consultation.id,
                requester_id=requesting_doctor_id,
                invitee_id=doctor_id,
                patient_id=patient_id,
            ))

        return consultation

    def reply(
        self,
        consultation_id: int,
        responding_doctor_id: str,
        reply_text: str,
        patient_id: Optional[int] = None
    ) -> ReplySummary:
        """
        Record a participant's reply and re-evaluate completion.
        A second reply from the same participant overwrites the first; every
        reply is also kept in the reply history.
        """
        if not reply_text or not reply_text.strip():
            raise ValidationError("Reply text is required")

        with self.locks.hold(consultation_id):
            try:
                consultation = (
                    self.db.query(Consultation)
                    .filter(Consultation.id == consultation_id)
                    .with_for_update()
                    .first()
                )
                if not consultation:
                    raise NotFoundError("Consultation not found")

                participant = (
                    self.db.query(ConsultationParticipant)
                    .filter(
                        ConsultationParticipant.consultation_id == consultation_id,
                        ConsultationParticipant.doctor_id == responding_doctor_id
                    )
                    .first()
                )
                if not participant:
                    raise NotFoundError("Doctor not invited to this consultation")

                if not consultation.is_open:
                    raise ValidationError("Cannot reply to a closed consultation")

                now = datetime.utcnow()
                participant.reply = reply_text
                participant.status = ParticipantStatus.REPLIED
                participant.replied_at = now
                self.db.add(ConsultationReply(participant_id=participant.id, reply=reply_text))
                self.db.flush()

                outstanding = (
                    self.db.query(func.count(ConsultationParticipant.id))
                    .filter(
                        ConsultationParticipant.consultation_id == consultation_id,
                        ConsultationParticipant.status != ParticipantStatus.REPLIED
                    )
                    .scalar()
                )
                all_replied = outstanding == 0
                if all_replied and consultation.status != ConsultationStatus.COMPLETE:
                    consultation.status = ConsultationStatus.COMPLETE
                consultation.updated_at = now

                requester_id = consultation.requesting_doctor_id
                event_patient_id = patient_id if patient_id is not None else consultation.patient_id

                self.db.commit()
            except ConsultationError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Failed to record reply on consultation {consultation_id} "
                    f"by doctor {responding_doctor_id}: {e}"
                )
                raise UnexpectedError("Failed to update consultation") from e

        logger.info(
            f"Consultation {consultation_id} replied by {responding_doctor_id} "
            f"(all_replied={all_replied})"
        )

        self._emit(ConsultationReplied(
            consultation_id=consultation_id,
            responder_id=responding_doctor_id,
            requester_id=requester_id,
            patient_id=event_patient_id,
        ))

        return ReplySummary(
            consultation_id=consultation_id,
            doctor_id=responding_doctor_id,
            reply=reply_text,
            all_replied=all_replied,
        )

    def add_participants(
        self,
        consultation_id: int,
        requesting_doctor_id: str,
        doctor_ids: Sequence[str]
    ) -> Dict[str, Any]:
        """Invite more doctors to a pending, open consultation"""
        requested = list(dict.fromkeys(doctor_ids or []))
        if not requested:
            raise ValidationError("At least one consulting doctor is required")
        if any(not d or not d.strip() for d in requested):
            raise ValidationError("Consulting doctor ids must not be blank")
        if requesting_doctor_id in requested:
            raise ValidationError("You cannot request a consultation from yourself")

        with self.locks.hold(consultation_id):
            try:
                consultation = self._get_owned_for_update(consultation_id, requesting_doctor_id)
                if not consultation.is_open:
                    raise ValidationError("Cannot add doctors to a closed consultation")
                if consultation.status == ConsultationStatus.COMPLETE:
                    raise ValidationError("Cannot add doctors to a completed consultation")

                existing = {
                    row.doctor_id
                    for row in self.db.query(ConsultationParticipant.doctor_id)
                    .filter(ConsultationParticipant.consultation_id == consultation_id)
                    .all()
                }
                to_add = [d for d in requested if d not in existing]
                if not to_add:
                    raise ValidationError("All selected doctors are already part of this consultation")
                self._require_doctors_exist(to_add)

                for doctor_id in to_add:
                    self.db.add(ConsultationParticipant(
                        consultation_id=consultation_id,
                        doctor_id=doctor_id,
                        status=ParticipantStatus.NOT_REPLIED,
                    ))
                consultation.updated_at = datetime.utcnow()
                patient_id = consultation.patient_id

                self.db.commit()
            except ConsultationError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to add doctors to consultation {consultation_id}: {e}")
                raise UnexpectedError("Failed to add doctors to consultation") from e

        logger.info(f"Added {len(to_add)} doctor(s) to consultation {consultation_id}")

        for doctor_id in to_add:
            self._emit(ConsultationCreated(
                consultation_id=consultation_id,
                requester_id=requesting_doctor_id,
                invitee_id=doctor_id,
                patient_id=patient_id,
            ))

        return {
            "consultation_id": consultation_id,
            "added_doctor_ids": to_add,
            "added_doctors_count": len(to_add),
        }

    def set_open(self, consultation_id: int, requesting_doctor_id: str, is_open: bool) -> Dict[str, Any]:
        """Open or close the discussion; pending/complete status is untouched"""
        with self.locks.hold(consultation_id):
            try:
                consultation = self._get_owned_for_update(consultation_id, requesting_doctor_id)
                consultation.is_open = is_open
                self.db.commit()
            except ConsultationError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to toggle consultation {consultation_id}: {e}")
                raise UnexpectedError("Failed to update consultation status") from e

        logger.info(f"Consultation {consultation_id} {'opened' if is_open else 'closed'}")
        return {"consultation_id": consultation_id, "is_open": is_open}

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def get_sent(self, doctor_id: str) -> List[Dict[str, Any]]:
        consultations = (
            self.db.query(Consultation)
            .filter(Consultation.requesting_doctor_id == doctor_id)
            .order_by(Consultation.updated_at.desc(), Consultation.id.desc())
            .all()
        )
        if not consultations:
            return []

        ids = [c.id for c in consultations]
        status_rows = (
            self.db.query(
                ConsultationParticipant.consultation_id,
                ConsultationParticipant.status,
                func.count(ConsultationParticipant.id)
            )
            .filter(ConsultationParticipant.consultation_id.in_(ids))
            .group_by(ConsultationParticipant.consultation_id, ConsultationParticipant.status)
            .all()
        )
        counts: Dict[int, Dict[str, int]] = {}
        for consultation_id, status, count in status_rows:
            counts.setdefault(consultation_id, {})[status] = count

        requester = load_doctors(self.db, [doctor_id]).get(doctor_id)
        patient_names = self.patients.get_display_names(c.patient_id for c in consultations)

        summaries = []
        for consultation in consultations:
            by_status = counts.get(consultation.id, {})
            summary = self._summary(consultation, requester, patient_names)
            summary["participants_count"] = sum(by_status.values())
            summary["replied_count"] = by_status.get(ParticipantStatus.REPLIED, 0)
            summaries.append(summary)
        return summaries

    def get_received(self, doctor_id: str) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(ConsultationParticipant, Consultation)
            .join(Consultation, ConsultationParticipant.consultation_id == Consultation.id)
            .filter(ConsultationParticipant.doctor_id == doctor_id)
            .order_by(Consultation.updated_at.desc(), Consultation.id.desc())
            .all()
        )
        if not rows:
            return []

        requesters = load_doctors(self.db, {c.requesting_doctor_id for _, c in rows})
        patient_names = self.patients.get_display_names(c.patient_id for _, c in rows)

        summaries = []
        for participant, consultation in rows:
            summary = self._summary(
                consultation, requesters.get(consultation.requesting_doctor_id), patient_names
            )
            summary["my_status"] = participant.status
            summary["my_reply"] = participant.reply
            summaries.append(summary)
        return summaries

    def get_detail(self, consultation_id: int, viewer_doctor_id: Optional[str] = None) -> Dict[str, Any]:
        consultation = self.db.query(Consultation).filter(Consultation.id == consultation_id).first()
        if not consultation:
            raise NotFoundError("Consultation not found")

        participants = (
            self.db.query(ConsultationParticipant)
            .filter(ConsultationParticipant.consultation_id == consultation_id)
            .order_by(ConsultationParticipant.id.asc())
            .all()
        )
        self._require_member(consultation, participants, viewer_doctor_id)

        history: Dict[int, List[Dict[str, Any]]] = {p.id: [] for p in participants}
        if participants:
            replies = (
                self.db.query(ConsultationReply)
                .filter(ConsultationReply.participant_id.in_(list(history)))
                .order_by(ConsultationReply.created_at.asc(), ConsultationReply.id.asc())
                .all()
            )
            for reply in replies:
                history[reply.participant_id].append({
                    "id": reply.id,
                    "reply": reply.reply,
                    "created_at": _iso(reply.created_at),
                })

        doctors = load_doctors(
            self.db, [consultation.requesting_doctor_id] + [p.doctor_id for p in participants]
        )

        try:
            patient_info = self.patients.get_snapshot(consultation.patient_id).to_dict()
        except NotFoundError:
            logger.warning(
                f"Consultation {consultation_id} references missing patient {consultation.patient_id}"
            )
            patient_info = None

        requester = doctor_card(doctors.get(consultation.requesting_doctor_id))
        participant_entries = []
        for p in participants:
            card = doctor_card(doctors.get(p.doctor_id))
            participant_entries.append({
                "id": p.id,
                "consultation_id": p.consultation_id,
                "consult_doctor_id": p.doctor_id,
                "consult_doctor_fname": card["fname"],
                "consult_doctor_lname": card["lname"],
                "consult_doctor_image": card["image"],
                "workingplace": card["workingplace"],
                "is_verified": card["is_verified"],
                "reply": p.reply if p.status == ParticipantStatus.REPLIED else settings.NO_REPLY_PLACEHOLDER,
                "status": p.status,
                "replied_at": _iso(p.replied_at),
                "replies": history[p.id],
            })

        return {
            "id": consultation.id,
            "doctor_id": consultation.requesting_doctor_id,
            "doctor_fname": requester["fname"],
            "doctor_lname": requester["lname"],
            "workingplace": requester["workingplace"],
            "image": requester["image"],
            "is_verified": requester["is_verified"],
            "status": consultation.status,
            "is_open": consultation.is_open,
            "consult_message": consultation.consult_message,
            "created_at": _iso(consultation.created_at),
            "updated_at": _iso(consultation.updated_at),
            "patient_info": patient_info,
            "consultation_doctors": participant_entries,
        }

    def get_members(self, consultation_id: int, viewer_doctor_id: str) -> List[Dict[str, Any]]:
        consultation = self.db.query(Consultation).filter(Consultation.id == consultation_id).first()
        if not consultation:
            raise NotFoundError("Consultation not found")

        participants = (
            self.db.query(ConsultationParticipant)
            .filter(ConsultationParticipant.consultation_id == consultation_id)
            .order_by(ConsultationParticipant.id.asc())
            .all()
        )
        self._require_member(consultation, participants, viewer_doctor_id)

        doctor_ids = [consultation.requesting_doctor_id] + [p.doctor_id for p in participants]
        doctors = load_doctors(self.db, doctor_ids)
        stats = load_doctor_stats(self.db, doctor_ids)

        members = []
        creator = doctors.get(consultation.requesting_doctor_id)
        if creator:
            member = doctor_profile(creator, stats[creator.id])
            member.update({"role": "creator", "status": "creator"})
            members.append(member)

        for p in participants:
            doctor = doctors.get(p.doctor_id)
            if not doctor:
                continue
            member = doctor_profile(doctor, stats[doctor.id])
            member.update({"role": "consulted", "status": p.status})
            members.append(member)
        return members

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _summary(
        self,
        consultation: Consultation,
        requester: Optional[User],
        patient_names: Dict[int, Optional[str]]
    ) -> Dict[str, Any]:
        card = doctor_card(requester)
        return {
            "id": consultation.id,
            "consult_message": consultation.consult_message,
            "doctor_id": consultation.requesting_doctor_id,
            "doctor_fname": card["fname"],
            "doctor_lname": card["lname"],
            "workingplace": card["workingplace"],
            "image": card["image"],
            "is_verified": card["is_verified"],
            "patient_id": consultation.patient_id,
            "patient_name": patient_names.get(consultation.patient_id),
            "status": consultation.status,
            "is_open": consultation.is_open,
            "created_at": _iso(consultation.created_at),
            "updated_at": _iso(consultation.updated_at),
        }

    def _require_doctors_exist(self, doctor_ids: Sequence[str]) -> None:
        found = {
            row.id
            for row in self.db.query(User.id)
            .filter(User.id.in_(list(doctor_ids)), User.role.in_(settings.CONSULT_CANDIDATE_ROLES))
            .all()
        }
        missing = [d for d in doctor_ids if d not in found]
        if missing:
            raise NotFoundError(f"One or more selected doctors do not exist: {', '.join(missing)}")

    def _get_owned_for_update(self, consultation_id: int, requesting_doctor_id: str) -> Consultation:
        consultation = (
            self.db.query(Consultation)
            .filter(Consultation.id == consultation_id)
            .with_for_update()
            .first()
        )
        if not consultation:
            raise NotFoundError("Consultation not found")
        if consultation.requesting_doctor_id != requesting_doctor_id:
            raise AccessDeniedError("Only the requesting doctor can modify this consultation")
        return consultation

    @staticmethod
    def _require_member(
        consultation: Consultation,
        participants: List[ConsultationParticipant],
        viewer_doctor_id: Optional[str]
    ) -> None:
        if viewer_doctor_id is None or viewer_doctor_id == consultation.requesting_doctor_id:
            return
        if any(p.doctor_id == viewer_doctor_id for p in participants):
            return
        raise AccessDeniedError("You are not authorized to view this consultation")

    def _emit(self, event) -> None:
        try:
            self.dispatcher.dispatch(event)
        except Exception as e:
            logger.warning(
                f"Failed to dispatch {event.event_type} for consultation "
                f"{event.consultation_id} to doctor {event.recipient_id}: {e}"
            )
