"""
Pytest configuration and fixtures
Each test gets a fresh in-memory SQLite database
"""
import os
import sys
from pathlib import Path
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment variables before importing
os.environ["ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["JOB_RETRY_BASE_DELAY"] = "0"
os.environ["CORS_ORIGINS"] = "http://localhost:3000"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce log noise in tests

# Import after setting env vars
from creator_commerce.app import app
from creator_commerce.auth import create_access_token
from creator_commerce.db import Base, bind_tenant, get_db
from creator_commerce.db import models  # noqa: F401
from creator_commerce.services.tenant_service import TenantService

TENANT = "acme"
OTHER_TENANT = "globex"


@pytest.fixture(scope="function")
def test_engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Unscoped database session shared with the app under test"""
    session = session_factory()

    def override_get_db():
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    yield session

    app.dependency_overrides.clear()
    session.close()


@pytest.fixture(scope="function")
def tenants(db_session: Session):
    """Two active tenants"""
    service = TenantService(db_session)
    return [
        service.create_tenant(TENANT, "Acme Creators"),
        service.create_tenant(OTHER_TENANT, "Globex Studio"),
    ]


@pytest.fixture(scope="function")
def db(db_session: Session, tenants):
    """Session scoped to the default test tenant"""
    bind_tenant(db_session, TENANT)
    yield db_session
    bind_tenant(db_session, None)


@pytest.fixture(scope="function")
def client(db_session):
    """Create test client"""
    return TestClient(app)


def make_token(role: str, sub: str = "user-1", tenant: Optional[str] = TENANT, name: Optional[str] = None) -> str:
    claims = {"sub": sub, "role": role}
    if tenant:
        claims["tenant"] = tenant
    if name:
        claims["name"] = name
    return create_access_token(data=claims)


def auth_headers(role: str, sub: str = "user-1", tenant: Optional[str] = TENANT, name: Optional[str] = None) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(role, sub=sub, tenant=tenant, name=name)}"}


@pytest.fixture
def admin_headers(tenants):
    return auth_headers("admin", sub="admin-1", name="Ada Admin")


@pytest.fixture
def other_admin_headers(tenants):
    return auth_headers("admin", sub="admin-2", tenant=OTHER_TENANT, name="Gus Admin")


@pytest.fixture
def creator_headers(tenants):
    return auth_headers("creator", sub="creator-1", name="Cleo Creator")


@pytest.fixture
def customer_headers(tenants):
    return auth_headers("customer", sub="cust-1", name="Cara Customer")


@pytest.fixture
def platform_headers():
    return auth_headers("platform", sub="ops-1", tenant=None)
