from __future__ import annotations

import os
import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "0")

from backend.app import models
from backend.app.database import Base, enable_sqlite_savepoints, get_db
from backend.app.main import app

SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    # Service commits and rollbacks only touch a savepoint of the outer transaction.
    session = Session(
        bind=connection,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def company(db_session: Session) -> models.Company:
    record = models.Company(name="Acme Logistics", contact_email="billing@acme.example")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def tariff_plan(db_session: Session) -> models.TariffPlan:
    record = models.TariffPlan(name="Fleet monthly", base_price=Decimal("1000.00"))
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def contract(
    db_session: Session, company: models.Company, tariff_plan: models.TariffPlan
) -> models.Contract:
    record = models.Contract(
        company_id=company.id,
        tariff_plan_id=tariff_plan.id,
        number="C-001",
        title="Fleet tracking",
        status=models.ContractStatus.ACTIVE,
        start_date=date(2024, 1, 1),
    )
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def add_object(db_session: Session) -> Callable[..., models.MonitoredObject]:
    """Attach an object with the given activity spans to a contract."""

    def _add(
        contract: models.Contract,
        name: str,
        *spans: tuple[datetime, Optional[datetime]],
        attached_on: date = date(2024, 1, 1),
    ) -> models.MonitoredObject:
        obj = models.MonitoredObject(contract_id=contract.id, name=name, attached_on=attached_on)
        for active_from, active_until in spans:
            obj.activity_intervals.append(
                models.ObjectActivityInterval(active_from=active_from, active_until=active_until)
            )
        db_session.add(obj)
        db_session.commit()
        db_session.expire(contract)
        return obj

    return _add
