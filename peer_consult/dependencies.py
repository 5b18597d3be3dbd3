from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from peer_consult.config import settings
from peer_consult.database import SessionLocal, get_db
from peer_consult.models.user import User
from peer_consult.services.consultation_service import ConsultationCoordinator
from peer_consult.services.doctor_search_service import DoctorSearchRanker
from peer_consult.services.notification_dispatcher import (
    AppNotificationDispatcher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from peer_consult.utils.security import verify_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_token(token)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None or not isinstance(user_id, str):
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception

    return user


async def get_current_doctor(
    current_user: User = Depends(get_current_user)
) -> User:
    if current_user.role not in settings.CONSULT_CANDIDATE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only doctors can access this resource"
        )
    return current_user


def is_privileged(user: User) -> bool:
    """Admins and testers see themselves in consult search"""
    return user.role in settings.PRIVILEGED_ROLES


def get_notification_dispatcher() -> NotificationDispatcher:
    if settings.NOTIFICATION_BACKEND == "log":
        return LoggingNotificationDispatcher()
    return AppNotificationDispatcher(SessionLocal)


def get_consultation_coordinator(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
) -> ConsultationCoordinator:
    return ConsultationCoordinator(db, dispatcher)


def get_doctor_search_ranker(db: Session = Depends(get_db)) -> DoctorSearchRanker:
    return DoctorSearchRanker(db)
