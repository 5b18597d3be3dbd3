"""
Doctor-to-doctor consultation API endpoints.
A doctor asks peers for advice on a patient; each invited peer replies.
"""

import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from peer_consult.dependencies import (
    get_consultation_coordinator,
    get_current_doctor,
    get_doctor_search_ranker,
    is_privileged,
)
from peer_consult.models.user import User
from peer_consult.services.consultation_errors import (
    AccessDeniedError,
    ConsultationError,
    NotFoundError,
    ValidationError,
)
from peer_consult.services.consultation_service import (
    ConsultationCoordinator,
    serialize_consultation,
)
from peer_consult.services.doctor_search_service import DoctorSearchRanker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consultations", tags=["consultations"])


class ConsultationCreateRequest(BaseModel):
    patient_id: int
    consult_message: str
    consult_doctor_ids: List[str]


class ConsultationReplyRequest(BaseModel):
    reply: str
    patient_id: Optional[int] = None


class AddDoctorsRequest(BaseModel):
    consult_doctor_ids: List[str]


class ToggleStatusRequest(BaseModel):
    is_open: bool


def _raise_http(error: ConsultationError, failure_message: str) -> NoReturn:
    if isinstance(error, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, AccessDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_message)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_consultation(
    request: ConsultationCreateRequest,
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    """Ask one or more doctors for advice on a patient"""
    try:
        consultation = coordinator.create(
            requesting_doctor_id=current_user.id,
            patient_id=request.patient_id,
            message=request.consult_message,
            invited_doctor_ids=request.consult_doctor_ids,
        )
    except ConsultationError as e:
        _raise_http(e, "Failed to create consultation.")
    return serialize_consultation(consultation)


@router.get("/sent")
async def get_sent_consultations(
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    """Consultations the current doctor requested, most recently active first"""
    try:
        return coordinator.get_sent(current_user.id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to retrieve sent consultations for doctor {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to retrieve sent consultation requests.")


@router.get("/received")
async def get_received_consultations(
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    """Consultations the current doctor was invited to, most recently active first"""
    try:
        return coordinator.get_received(current_user.id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to retrieve received consultations for doctor {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to retrieve received consultation requests.")


@router.get("/search/{query}")
async def search_consult_doctors(
    query: str,
    current_user: User = Depends(get_current_doctor),
    ranker: DoctorSearchRanker = Depends(get_doctor_search_ranker)
):
    """
    Find doctors to consult.
    Any keyword may match name, last name, email or phone; results are ranked
    by score, then by patient count.
    """
    try:
        return ranker.search(
            query_text=query,
            calling_doctor_id=current_user.id,
            caller_is_privileged=is_privileged(current_user),
        )
    except ConsultationError as e:
        _raise_http(e, "Failed to search for doctors.")
    except SQLAlchemyError as e:
        logger.error(f"Consult search failed for doctor {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to search for doctors.")


@router.get("/{consultation_id}")
async def get_consultation_detail(
    consultation_id: int,
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    try:
        return coordinator.get_detail(consultation_id, viewer_doctor_id=current_user.id)
    except ConsultationError as e:
        _raise_http(e, "Failed to retrieve consultation details.")
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to retrieve consultation {consultation_id} for doctor {current_user.id}: {e}"
        )
        raise HTTPException(status_code=500, detail="Failed to retrieve consultation details.")


@router.put("/{consultation_id}")
async def reply_to_consultation(
    consultation_id: int,
    request: ConsultationReplyRequest,
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    """Record the current doctor's reply; all_replied tells whether the consultation is complete"""
    try:
        summary = coordinator.reply(
            consultation_id=consultation_id,
            responding_doctor_id=current_user.id,
            reply_text=request.reply,
            patient_id=request.patient_id,
        )
    except ConsultationError as e:
        _raise_http(e, "An error occurred while updating the consultation request.")
    return summary.to_dict()


@router.post("/{consultation_id}/doctors")
async def add_consultation_doctors(
    consultation_id: int,
    request: AddDoctorsRequest,
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    try:
        return coordinator.add_participants(
            consultation_id, current_user.id, request.consult_doctor_ids
        )
    except ConsultationError as e:
        _raise_http(e, "Failed to add doctors to consultation.")


@router.patch("/{consultation_id}/status")
async def toggle_consultation_status(
    consultation_id: int,
    request: ToggleStatusRequest,
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    try:
        return coordinator.set_open(consultation_id, current_user.id, request.is_open)
    except ConsultationError as e:
        _raise_http(e, "Failed to update consultation status.")


@router.get("/{consultation_id}/members")
async def get_consultation_members(
    consultation_id: int,
    current_user: User = Depends(get_current_doctor),
    coordinator: ConsultationCoordinator = Depends(get_consultation_coordinator)
):
    try:
        return coordinator.get_members(consultation_id, current_user.id)
    except ConsultationError as e:
        _raise_http(e, "Failed to get consultation members.")
    except SQLAlchemyError as e:
        logger.error(f"Failed to list members of consultation {consultation_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get consultation members.")
