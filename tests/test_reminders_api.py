from fastapi import Depends
from fastapi.testclient import TestClient
import pytest

from salon_api import config
from salon_api.database import get_db
from salon_api.domain.reminders.router import get_reminder_service, get_tenant
from salon_api.domain.reminders.service import ReminderService
from salon_api.main import app
from salon_api.models import get_tenant_models

from conftest import TEST_LOCATION, TEST_TIMEZONE, FakeSleep, ProviderStub, seed_appointment, seed_config


@pytest.fixture
def stub():
    return ProviderStub(201, {"sid": "SM1"})


@pytest.fixture
def client(session_factory, engine, stub):
    get_tenant_models("isabelle_").create_all(engine)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_service(models=Depends(get_tenant), db=Depends(get_db)):
        return ReminderService(
            db,
            models,
            location=TEST_LOCATION,
            timezone_name=TEST_TIMEZONE,
            sleep=FakeSleep(),
            transport=stub.transport,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reminder_service] = override_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_completed_run_returns_summary(client, db, models, tomorrow) -> None:
    seed_config(db, models)
    seed_appointment(db, models, tomorrow)

    response = client.post("/reminders/daily-confirmations")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "WhatsApp confirmations processed"
    assert (data["sent"], data["failed"], data["errors"]) == (1, 0, [])
    assert "timestamp" in data
    assert "error" not in data


def test_provider_failures_still_return_200(client, db, models, tomorrow, stub) -> None:
    stub.status_code = 401
    stub.payload = {"code": 20003, "message": "Authenticate"}
    seed_config(db, models)
    seed_appointment(db, models, tomorrow, first_name="Giulia")

    response = client.post("/reminders/daily-confirmations")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["failed"] == 1
    assert data["errors"] == ["Giulia: Authenticate"]


def test_missing_config_returns_500(client, db, models, tomorrow, stub) -> None:
    seed_appointment(db, models, tomorrow)

    response = client.post("/reminders/daily-confirmations")

    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "WhatsApp configuration not found or inactive"
    assert data["sent"] == 0
    assert stub.requests == []


def test_empty_run_reports_no_appointments(client, db, models) -> None:
    seed_config(db, models)

    response = client.post("/reminders/daily-confirmations")

    assert response.status_code == 200
    assert response.json()["message"] == "No appointments found for tomorrow"


def test_table_prefix_selects_tenant(client, session_factory, tomorrow, db, models) -> None:
    tenant = get_tenant_models("isabelle_")
    tenant_db = session_factory()
    try:
        seed_config(tenant_db, tenant)
        seed_appointment(tenant_db, tenant, tomorrow)
    finally:
        tenant_db.close()

    response = client.post("/reminders/daily-confirmations", params={"table_prefix": "isabelle_"})
    default_response = client.post("/reminders/daily-confirmations")

    assert response.json()["sent"] == 1
    assert default_response.status_code == 500


def test_invalid_table_prefix_is_rejected(client) -> None:
    response = client.post("/reminders/daily-confirmations", params={"table_prefix": "x; DROP"})

    assert response.status_code == 400


def test_message_log_lists_newest_records(client, db, models, tomorrow) -> None:
    seed_config(db, models)
    seed_appointment(db, models, tomorrow, first_name="Giulia", last_name="Rossi")
    client.post("/reminders/daily-confirmations")
    db.add(
        models.DispatchRecord(
            client_id="gone",
            appointment_id="gone",
            phone_number="+390000000",
            message_content="orphan",
            status="failed",
            error_message="API Error: 500",
        )
    )
    db.commit()

    response = client.get("/reminders/messages", params={"limit": 10})

    assert response.status_code == 200
    entries = {entry["message_content"]: entry for entry in response.json()}
    assert len(entries) == 2
    orphan = entries["orphan"]
    assert orphan["client_name"] == "Cliente Sconosciuto"
    assert orphan["service"] == "Generico"
    assert orphan["error_message"] == "API Error: 500"
    [sent] = [e for e in entries.values() if e["message_status"] == "sent"]
    assert sent["client_name"] == "Giulia Rossi"
    assert sent["service"] == "Manicure"
    assert sent["appointment_time"] == "16:00"
    assert sent["appointment_date"] == tomorrow.isoformat()


def test_malformed_encryption_key_returns_error_envelope(client, db, models, tomorrow, stub, monkeypatch) -> None:
    monkeypatch.setattr(config, "CREDENTIALS_ENCRYPTION_KEY", "not-a-fernet-key")
    seed_config(db, models)
    seed_appointment(db, models, tomorrow)

    response = client.post("/reminders/daily-confirmations")

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    data = response.json()
    assert data["success"] is False
    assert "CREDENTIALS_ENCRYPTION_KEY" in data["error"]
    assert "timestamp" in data
    assert stub.requests == []


def test_unknown_timezone_returns_error_envelope(client, db, models, stub) -> None:
    seed_config(db, models)

    def override_service(models=Depends(get_tenant), db=Depends(get_db)):
        return ReminderService(db, models, timezone_name="Mars/Olympus", transport=stub.transport)

    app.dependency_overrides[get_reminder_service] = override_service

    response = client.post("/reminders/daily-confirmations")

    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "Unknown salon timezone: Mars/Olympus"
