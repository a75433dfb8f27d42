import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-bizdesk")
# Off-hours detection would make audit row counts depend on the wall clock
os.environ.setdefault("OFF_HOURS_START", "23")
os.environ.setdefault("OFF_HOURS_END", "0")

import pytest
from datetime import date, datetime, timedelta, UTC
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from jose import jwt

from bizdesk.database import get_db
from bizdesk.models.base import Base
from bizdesk.config import settings
# Import all model classes to ensure they're registered with SQLAlchemy
from bizdesk.models.user import User
from bizdesk.models.workspace import Workspace
from bizdesk.models.workspace_membership import WorkspaceMembership
from bizdesk.models.customer import Customer
from bizdesk.models.invoice import Invoice, InvoiceLineItem
from bizdesk.models.payment import Payment
from bizdesk.models.expense import Expense
from bizdesk.models.task import Task
from bizdesk.models.audit_log import AuditLog
from bizdesk.models.action_attempt import ActionAttempt
from bizdesk.models.role import WorkspaceRole
from bizdesk.models.action_context import AuthenticatedUser
from bizdesk.actions.executor import ActionExecutor
from bizdesk.actions.registry import get_action
from bizdesk.services.identity import StaticIdentityProvider
# Import FastAPI app AFTER model imports (this also registers every action)
from bizdesk.main import app

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with test database"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_test_token(
    user_id: str = "test-user-123", email: str | None = None, expired: bool = False
) -> str:
    """
    Generate valid JWT token for testing.

    Args:
        user_id: User ID to embed in 'sub' claim
        email: Optional email claim
        expired: If True, create expired token

    Returns:
        Encoded JWT token
    """
    if expired:
        exp = datetime.now(UTC) - timedelta(minutes=5)
    else:
        exp = datetime.now(UTC) + timedelta(minutes=15)

    payload = {"sub": user_id, "exp": exp, "iat": datetime.now(UTC)}
    if email:
        payload["email"] = email

    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_test_token(user_id=user_id)}"}


def identity(user: User) -> AuthenticatedUser:
    return AuthenticatedUser(id=user.id, auth_user_id=user.auth_user_id, email=user.email)


def add_user(db, auth_user_id: str, email: str | None = None) -> User:
    user = User(auth_user_id=auth_user_id, email=email)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_workspace(db, slug: str, name: str, members: list[tuple[User, WorkspaceRole]]) -> Workspace:
    workspace = Workspace(slug=slug, name=name, created_by=members[0][0].id)
    db.add(workspace)
    db.flush()
    for user, role in members:
        db.add(WorkspaceMembership(workspace_id=workspace.id, user_id=user.id, role=role))
    db.commit()
    db.refresh(workspace)
    return workspace


@pytest.fixture
def admin_user(db_session):
    return add_user(db_session, "user-admin", "admin@acme.test")


@pytest.fixture
def member_user(db_session):
    return add_user(db_session, "user-member", "member@acme.test")


@pytest.fixture
def viewer_user(db_session):
    return add_user(db_session, "user-viewer", "viewer@acme.test")


@pytest.fixture
def outsider_user(db_session):
    """Admin of another workspace, not a member of ``workspace``"""
    return add_user(db_session, "user-outsider", "owner@globex.test")


@pytest.fixture
def workspace(db_session, admin_user, member_user, viewer_user):
    """Workspace with one admin, one member and one viewer"""
    return add_workspace(
        db_session,
        "acme",
        "Acme Ltd",
        [
            (admin_user, WorkspaceRole.ADMIN),
            (member_user, WorkspaceRole.MEMBER),
            (viewer_user, WorkspaceRole.VIEWER),
        ],
    )


@pytest.fixture
def other_workspace(db_session, outsider_user):
    return add_workspace(db_session, "globex", "Globex", [(outsider_user, WorkspaceRole.ADMIN)])


@pytest.fixture
def make_executor(db_session):
    """Executor factory; ``user=None`` gives an unauthenticated caller"""

    def _make(user: User | None = None, **kwargs) -> ActionExecutor:
        provider = StaticIdentityProvider(identity(user) if user is not None else None)
        return ActionExecutor(db_session, provider, **kwargs)

    return _make


@pytest.fixture
def call(make_executor):
    """Run a registered action by name: ``call("customers.create", user, {...})``"""

    def _call(action_name: str, user: User | None, payload: dict | None = None, **kwargs):
        return get_action(action_name)(make_executor(user, **kwargs), payload or {})

    return _call


@pytest.fixture
def customer(call, workspace, member_user):
    result = call(
        "customers.create",
        member_user,
        {"workspace_id": workspace.id, "name": "Initech", "email": "billing@initech.test"},
    )
    assert result.success, result.errors
    return result.data


@pytest.fixture
def invoice(call, workspace, member_user, customer):
    """Draft invoice totalling 110.00 (100.00 plus 10% tax)"""
    result = call(
        "invoices.create",
        member_user,
        {
            "workspace_id": workspace.id,
            "customer_id": customer.id,
            "invoice_number": "INV-001",
            "issue_date": date.today().isoformat(),
            "tax_rate": "0.10",
            "line_items": [
                {"description": "Consulting", "quantity": "2", "unit_price": "40.00"},
                {"description": "Support plan", "quantity": "1", "unit_price": "20.00"},
            ],
        },
    )
    assert result.success, result.errors
    assert result.data.total_amount == Decimal("110.00")
    return result.data
