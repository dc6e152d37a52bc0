from routes.health import MIGRATION_REVISION


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data.get("ok") is True
    assert data.get("db_ok") is True


def test_health_reports_env(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data.get("ok") is True
    assert "env" in data
    assert "store_backend" in data


def test_readyz(client):
    r = client.get("/readyz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["ready"] is True
    assert data["db_ok"] is True
    assert data["migration_revision"] == MIGRATION_REVISION


def test_readyz_reports_store_failure(client, store, monkeypatch):
    def broken_ping():
        raise RuntimeError("connection refused")

    monkeypatch.setattr(store, "ping", broken_ping)
    r = client.get("/readyz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["ready"] is False
    assert data["db_error"] == "RuntimeError"
    assert "connection refused" not in r.text


def test_git_sha_reported(client, monkeypatch):
    monkeypatch.setenv("GIT_SHA", "test-sha")
    r = client.get("/healthz")
    assert r.json().get("git_sha") == "test-sha"
