import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import json  # noqa: E402
from datetime import date  # noqa: E402
from typing import Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from salon_api import config  # noqa: E402
from salon_api.domain.reminders.service import tomorrow_in  # noqa: E402
from salon_api.models import PROVIDER_TWILIO, get_tenant_models  # noqa: E402

TEST_TIMEZONE = "Europe/Rome"
TEST_LOCATION = "Via Roma 1, Reggio Calabria"


@pytest.fixture(autouse=True)
def _development_mode(monkeypatch):
    monkeypatch.setattr(config, "WHATSAPP_MODE", "development")
    monkeypatch.setattr(config, "CREDENTIALS_ENCRYPTION_KEY", None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def models(engine):
    tenant = get_tenant_models("")
    tenant.create_all(engine)
    return tenant


@pytest.fixture
def db(session_factory, models):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def tomorrow() -> date:
    return tomorrow_in(TEST_TIMEZONE)


def seed_config(db, models, provider: str = PROVIDER_TWILIO, **overrides):
    values = {
        "provider": provider,
        "api_token": "auth-token",
        "is_active": True,
    }
    if provider == PROVIDER_TWILIO:
        values.update(account_sid="AC123", from_number="+14155238886")
    else:
        values.update(api_url="https://graph.facebook.com/v18.0/1234567890")
    values.update(overrides)
    row = models.ReminderConfig(**values)
    db.add(row)
    db.commit()
    return row


def seed_appointment(
    db,
    models,
    appointment_date: date,
    first_name: str = "Giulia",
    last_name: str = "Rossi",
    phone: Optional[str] = "+39 333 123 4567",
    time: Optional[str] = "16:00",
    treatment: Optional[str] = "Manicure",
    status: str = "pending",
):
    client = models.Client(first_name=first_name, last_name=last_name, phone=phone)
    db.add(client)
    db.flush()
    appointment = models.Appointment(
        client_id=client.id,
        date=appointment_date,
        time=time,
        treatment=treatment,
        status=status,
    )
    db.add(appointment)
    db.commit()
    return appointment


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ProviderStub:
    """httpx transport answering every request with a fixed response"""

    def __init__(self, status_code: int = 201, payload=None, content: Optional[bytes] = None):
        self.status_code = status_code
        self.payload = payload if payload is not None else {"sid": "SM0001"}
        self.content = content
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, content=json.dumps(self.payload).encode())

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def provider_stub():
    return ProviderStub()
