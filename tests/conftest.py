"""Pytest configuration and shared fixtures.

Every test gets its own SQLite database file, so sessions opened by the
same test share data while tests stay isolated from each other.
"""

from typing import Callable, List, Optional

import pytest
from jose import jwt

from manualflow.core.approval import ApprovalWorkflowService, WorkflowEvent
from manualflow.core.config import Settings
from manualflow.db.base import Base
from manualflow.db.session import create_db_engine, create_session_factory
from manualflow.services.manuals import ManualRegistry


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'manualflow.db'}",
        secret_key="test-secret",
        algorithm="HS256",
        admin_role="admin",
        decision_conflict_retries=1,
        log_dir=str(tmp_path / "logs"),
        file_logging=False,
        webhook_url=None,
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.database_url)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def registry(db_session) -> ManualRegistry:
    return ManualRegistry(db_session)


@pytest.fixture
def events() -> List[WorkflowEvent]:
    """Events captured by the ``service`` fixture's notifier."""
    return []


@pytest.fixture
def service(db_session, registry, events, settings) -> ApprovalWorkflowService:
    return ApprovalWorkflowService(
        db_session,
        registry=registry,
        notify=events.append,
        settings=settings,
    )


@pytest.fixture
def make_token(settings) -> Callable[..., str]:
    """Build bearer tokens the API accepts."""

    def _make_token(username: str, role: Optional[str] = None) -> str:
        claims = {"sub": username, "username": username}
        if role:
            claims["role"] = role
        return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)

    return _make_token


@pytest.fixture
def auth_headers(make_token) -> Callable[..., dict]:
    def _auth_headers(username: str, role: Optional[str] = None) -> dict:
        return {"Authorization": f"Bearer {make_token(username, role)}"}

    return _auth_headers


@pytest.fixture
def client(session_factory, settings):
    """TestClient bound to the per-test database."""
    from fastapi.testclient import TestClient

    from manualflow.api.deps import get_db
    from manualflow.api.main import app
    from manualflow.core.config import get_settings

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
