import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wms.auth import ALGORITHM, create_access_token, hash_password, replace_user_module_access, seed_modules, verify_password
from wms.config import SECRET_KEY
from wms.db import Base, get_db
from wms.main import app
from wms.models import Company, User


pytestmark = pytest.mark.real_auth


@pytest.fixture()
def client():
    engine = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()
    Base.metadata.drop_all(engine)


def _bootstrap(test_client):
    response = test_client.post(
        "/api/auth/bootstrap/admin",
        json={
            "company_code": "ACME",
            "company_name": "Acme Warehousing",
            "email": "admin@warehouse.local",
            "password": "password1234",
            "full_name": "Admin",
        },
    )
    assert response.status_code == 201
    return response.json()


def _login(test_client, email):
    response = test_client.post("/api/auth/login", json={"email": email, "password": "password1234"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_password_hash_round_trip():
    password_hash = hash_password("s3cret-pass")

    assert verify_password("s3cret-pass", password_hash)
    assert not verify_password("wrong-pass", password_hash)


def test_access_token_carries_subject_and_tenant():
    token = create_access_token({"sub": "7", "company_id": 3})

    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])

    assert payload["sub"] == "7"
    assert payload["company_id"] == 3
    assert "exp" in payload


def test_bootstrap_then_login_and_me(client):
    test_client, _ = client
    body = _bootstrap(test_client)
    assert body["user"]["is_admin"] is True

    headers = _login(test_client, "admin@warehouse.local")
    response = test_client.get("/api/auth/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["user"]["email"] == "admin@warehouse.local"
    assert "PICKING" in response.json()["allowed_modules"]

    again = test_client.post(
        "/api/auth/bootstrap/admin",
        json={"company_code": "X", "company_name": "X", "email": "x@x.local", "password": "password1234"},
    )
    assert again.status_code == 409


def test_requests_without_token_are_rejected(client):
    test_client, _ = client

    response = test_client.get("/api/pickings/1")

    assert response.status_code == 401


def test_module_access_is_enforced_for_staff(client):
    test_client, SessionLocal = client
    _bootstrap(test_client)
    with SessionLocal() as db:
        company = db.query(Company).filter(Company.code == "ACME").one()
        seed_modules(db)
        staff = User(
            company_id=company.id,
            email="picker@warehouse.local",
            full_name="Picker",
            password_hash=hash_password("password1234"),
            role="operator",
            is_admin=False,
            is_active=True,
        )
        db.add(staff)
        db.flush()
        replace_user_module_access(db, staff.id, ["PICKING"])
        db.commit()

    headers = _login(test_client, "picker@warehouse.local")

    assert test_client.get("/api/pickings/999", headers=headers).status_code == 404
    assert test_client.get("/api/inventory", headers=headers).status_code == 403
    assert test_client.get("/api/auth/me", headers=headers).json()["allowed_modules"] == ["PICKING"]


def test_token_for_another_tenant_is_rejected(client):
    test_client, SessionLocal = client
    body = _bootstrap(test_client)
    forged = create_access_token({"sub": str(body["user"]["id"]), "company_id": body["user"]["company_id"] + 1})

    response = test_client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401
