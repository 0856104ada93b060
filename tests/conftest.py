import pytest
import os
import time
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from ems.database import Base, build_engine, get_db
from ems.main import app
from ems.core.permissions import Caller
from ems.core.security import create_access_token
from ems.models.employee import SalaryType
from ems.models.user import UserRole
from ems.services.employee_service import provision_employee
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = build_engine(SQLALCHEMY_DATABASE_URL, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema per test. Services commit and roll back on their own, so each
    test gets its own tables instead of an outer transaction.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def make_employee(db_session):
    """Factory provisioning user + employee profile + current-year leave balance."""
    counter = {"n": 0}

    def _make(role=UserRole.EMPLOYEE, salary_type=SalaryType.FIXED.value, salary=30000.0, hourly_rate=None):
        counter["n"] += 1
        return provision_employee(
            db_session,
            email=f"{role.value}{counter['n']}@example.com",
            full_name=f"Test {role.value.title()} {counter['n']}",
            role=role,
            salary_type=salary_type,
            salary=salary,
            hourly_rate=hourly_rate,
        )
    return _make

@pytest.fixture(scope="function")
def employee(make_employee):
    return make_employee()

@pytest.fixture(scope="function")
def hr_employee(make_employee):
    return make_employee(role=UserRole.HR, salary=45000.0)

@pytest.fixture(scope="function")
def admin_employee(make_employee):
    return make_employee(role=UserRole.ADMIN, salary=90000.0)

def caller_for(emp) -> Caller:
    return Caller(user_id=emp.user_id, role=emp.user.role)

@pytest.fixture(scope="function")
def employee_caller(employee):
    return caller_for(employee)

@pytest.fixture(scope="function")
def hr_caller(hr_employee):
    return caller_for(hr_employee)

@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to mint identity-provider tokens."""
    def _get_token(emp):
        return create_access_token(data={
            "sub": str(emp.user_id),
            "role": emp.user.role.value,
        })
    return _get_token

@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _headers(emp):
        return {"Authorization": f"Bearer {get_token(emp)}"}
    return _headers

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture(scope="function")
def make_caller(make_employee):
    def _make(**kwargs):
        return caller_for(make_employee(**kwargs))
    return _make

@pytest.fixture(scope="function")
def kolkata_tz(monkeypatch):
    """Run the test with the process local timezone at UTC+05:30."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Asia/Kolkata")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
