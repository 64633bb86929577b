"""Shared test fixtures for the Zinara backend tests."""

import asyncio
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from config.config import Settings
from database.tables import User, UserRole
from main import create_app

DEFAULT_PASSWORD = "Secret123"


def run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture(autouse=True)
def _fast_password_hashing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("services.auth_service.BCRYPT_ROUNDS", 4)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        database_url="sqlite://",
        redis_url=None,
        llm_api_key="",
        jwt_secret_key="test-secret",
        seed_questions_on_startup=True,
        log_format="console",
        log_level="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(client):
    """Session on the running app's database."""
    session = client.app.state.database.session()
    try:
        yield session
    finally:
        session.close()


@dataclass
class Patient:
    id: str
    email: str
    headers: dict[str, str]


def register_patient(
    client: TestClient,
    email: str = "ada@example.com",
    name: str = "Ada Lovelace",
    password: str = DEFAULT_PASSWORD,
) -> Patient:
    response = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert response.status_code == 201, response.text
    login = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200, login.text
    body = login.json()
    return Patient(
        id=body["user"]["id"],
        email=email,
        headers={"Authorization": f"Bearer {body['access_token']}"},
    )


def make_admin(client: TestClient, user_id: str) -> None:
    session = client.app.state.database.session()
    try:
        user = session.get(User, user_id)
        user.role = UserRole.ADMIN.value
        session.commit()
    finally:
        session.close()


@pytest.fixture
def patient(client) -> Patient:
    return register_patient(client)


def answer_step(client: TestClient, patient: Patient, step: int, answer: str, **extra):
    question = client.get(
        "/api/v1/onboarding/questions", params={"step": step}, headers=patient.headers
    )
    assert question.status_code == 200, question.text
    payload = {
        "question_id": question.json()["question"]["id"],
        "step_number": step,
        "answer": answer,
        **extra,
    }
    return client.post("/api/v1/onboarding/responses", json=payload, headers=patient.headers)
