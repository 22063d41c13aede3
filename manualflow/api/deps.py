from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from manualflow.core.approval import ApprovalWorkflowService
from manualflow.core.config import Settings, get_settings
from manualflow.core.security import Identity, decode_token
from manualflow.db.session import get_session_factory
from manualflow.services.manuals import ManualRegistry
from manualflow.services.notifications import NotificationEmitter, NotificationService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_current_identity(
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> Identity:
    """Get the caller identity from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    identity = decode_token(token, settings)
    if identity is None:
        raise credentials_exception
    return identity


def require_admin(
    identity: Identity = Depends(get_current_identity),
    settings: Settings = Depends(get_settings),
) -> Identity:
    """Only administrators may change rules or remove decisions."""
    if not identity.is_admin(settings):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return identity


def get_registry(db: Session = Depends(get_db)) -> ManualRegistry:
    return ManualRegistry(db)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_workflow_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ApprovalWorkflowService:
    """Approval workflow wired to in-app notifications and webhooks."""
    registry = ManualRegistry(db)
    emitter = NotificationEmitter(db, registry=registry, settings=settings)
    return ApprovalWorkflowService(
        db,
        registry=registry,
        notify=emitter,
        settings=settings,
    )
