# backend/tests/conftest.py
from __future__ import annotations

import os

# Must be set before paydesk.db builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TZ", "UTC")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import paydesk.models  # noqa: F401
from paydesk.db import Base
from paydesk.dependencies import get_db
from paydesk.main import app
from paydesk.services.payroll_policy import reset_policy_cache

POLICY_ENV = (
    "PD_INSURANCE_RATE",
    "PD_TAX_RATE",
    "PD_OVERTIME_MULTIPLIER",
    "PD_WORKING_DAYS",
    "PD_HOURS_PER_DAY",
    "PD_MINUTES_PER_DAY",
    "PD_POLICY_FILE",
)


@pytest.fixture(autouse=True)
def default_policy(monkeypatch):
    for key in POLICY_ENV:
        monkeypatch.delenv(key, raising=False)
    reset_policy_cache()
    yield
    reset_policy_cache()


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def _get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app, headers={"X-Actor": "hr.admin"})
    finally:
        app.dependency_overrides.clear()
