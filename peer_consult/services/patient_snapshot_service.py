"""
Patient Snapshot Provider
Read-only projection of patient identity and case status, shown next to
consultation records.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from peer_consult.models.patient import Patient
from peer_consult.services.consultation_errors import NotFoundError


@dataclass
class PatientSnapshot:
    id: int
    owner_doctor_id: str
    display_name: Optional[str]
    hospital: Optional[str]
    submit_status: bool
    outcome_status: bool
    updated_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "doctor_id": self.owner_doctor_id,
            "name": self.display_name,
            "hospital": self.hospital,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "sections": {
                "patient_id": self.id,
                "submit_status": self.submit_status,
                "outcome_status": self.outcome_status,
            },
        }


class PatientSnapshotProvider:
    def get_snapshot(self, patient_id: int) -> PatientSnapshot:
        raise NotImplementedError

    def get_display_names(self, patient_ids: Iterable[int]) -> Dict[int, Optional[str]]:
        raise NotImplementedError


class SqlPatientSnapshotProvider(PatientSnapshotProvider):
    """Reads snapshots from the patients table"""

    def __init__(self, db: Session):
        self.db = db

    def get_snapshot(self, patient_id: int) -> PatientSnapshot:
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise NotFoundError(f"Patient {patient_id} not found")

        return PatientSnapshot(
            id=patient.id,
            owner_doctor_id=patient.doctor_id,
            display_name=patient.name,
            hospital=patient.hospital,
            submit_status=bool(patient.submit_status),
            outcome_status=bool(patient.outcome_status),
            updated_at=patient.updated_at,
        )

    def get_display_names(self, patient_ids: Iterable[int]) -> Dict[int, Optional[str]]:
        ids = set(patient_ids)
        if not ids:
            return {}
        rows = self.db.query(Patient.id, Patient.name).filter(Patient.id.in_(ids)).all()
        return {row.id: row.name for row in rows}
