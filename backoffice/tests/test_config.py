"""
Settings loading and ORM-backed response schemas.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

from backoffice.app.core.config import Settings
from backoffice.app.models.delivery_enums import DeliveryStatus
from backoffice.app.schemas.delivery import StatusHistoryEntryResponse


def test_settings_read_environment_case_insensitively(monkeypatch):
    monkeypatch.setenv("LOCK_BACKEND", "redis")
    monkeypatch.setenv("email_enabled", "true")

    loaded = Settings(_env_file=None)

    assert loaded.lock_backend == "redis"
    assert loaded.email_enabled is True
    assert Settings.model_config["env_file"] == ".env"


def test_history_entry_schema_reads_attributes():
    entry = SimpleNamespace(
        status=DeliveryStatus.IN_TRANSIT,
        note="Left the hub",
        timestamp=datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc),
    )

    response = StatusHistoryEntryResponse.model_validate(entry)

    assert response.status == DeliveryStatus.IN_TRANSIT
    assert response.note == "Left the hub"
