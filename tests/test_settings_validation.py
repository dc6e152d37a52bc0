from __future__ import annotations

import pytest

from settings import DEV_BLOB_SECRET, DEV_JWT_SECRET, cors_origins, settings, validate_env_settings


def _production_ready(monkeypatch, env: str = "prod") -> None:
    monkeypatch.setattr(settings, "ENV", env, raising=False)
    monkeypatch.setattr(settings, "STORE_BACKEND", "postgres", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "postgresql://example", raising=False)
    monkeypatch.setattr(settings, "JWT_SECRET", "a" * 32, raising=False)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_live_example", raising=False)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_example", raising=False)
    monkeypatch.setattr(settings, "BLOB_SIGNING_SECRET", "b" * 32, raising=False)


def test_validate_env_allows_dev_missing(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "dev", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    monkeypatch.setattr(settings, "JWT_SECRET", DEV_JWT_SECRET, raising=False)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "", raising=False)
    validate_env_settings()


def test_validate_env_prod_passes_when_configured(monkeypatch):
    _production_ready(monkeypatch)
    validate_env_settings()


def test_validate_env_staging_fails_on_dev_defaults(monkeypatch):
    _production_ready(monkeypatch, env="staging")
    monkeypatch.setattr(settings, "JWT_SECRET", DEV_JWT_SECRET, raising=False)
    monkeypatch.setattr(settings, "BLOB_SIGNING_SECRET", DEV_BLOB_SECRET, raising=False)

    with pytest.raises(RuntimeError) as exc:
        validate_env_settings()

    message = str(exc.value)
    assert "JWT_SECRET" in message
    assert "BLOB_SIGNING_SECRET" in message
    assert "DATABASE_URL" not in message


def test_validate_env_prod_fails_on_missing(monkeypatch):
    _production_ready(monkeypatch)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "", raising=False)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", " ", raising=False)

    with pytest.raises(RuntimeError) as exc:
        validate_env_settings()

    message = str(exc.value)
    assert "DATABASE_URL" in message
    assert "STRIPE_SECRET_KEY" in message
    assert "STRIPE_WEBHOOK_SECRET" in message


def test_memory_backend_needs_no_database_url(monkeypatch):
    _production_ready(monkeypatch)
    monkeypatch.setattr(settings, "STORE_BACKEND", "memory", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    validate_env_settings()


def test_cors_origins_parsing(monkeypatch):
    monkeypatch.setattr(settings, "CORS_ALLOW_ORIGINS", " https://apply.example.org, ,http://localhost:5173 ", raising=False)
    assert cors_origins() == ["https://apply.example.org", "http://localhost:5173"]
