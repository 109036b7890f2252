from __future__ import annotations

from starlette.testclient import TestClient

from app_factory import create_app


def _client(tmp_path, monkeypatch) -> TestClient:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("ACCOUNT_ID", "acct")
    monkeypatch.setenv("BACKUP_MAX_PER_ACCOUNT", "2")
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)
    return TestClient(create_app())


def test_health_endpoints(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        assert client.get("/v1/health").json()["ok"] is True
        assert client.get("/livez").status_code == 200
        res = client.get("/readyz")
        assert res.status_code == 200
        assert res.json()["checks"]["db"]["ok"] is True
        assert "X-Request-Id" in res.headers


def test_backup_lifecycle(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        imported = client.post(
            "/v1/links/import",
            json={"links": [{"url": "https://example.com", "title": "Example"}]},
        )
        assert imported.status_code == 200
        assert imported.json()["imported"] == 1

        created = client.post("/v1/backups", json={"backupType": "manual"})
        assert created.status_code == 200
        info = created.json()
        assert info["filename"].startswith("stacklume-backup-")

        listed = client.get("/v1/backups").json()
        assert [b["id"] for b in listed] == [info["id"]]
        assert listed[0]["item_count"]["links"] == 1

        download = client.get(f"/v1/backups/{info['id']}")
        assert download.status_code == 200
        assert info["filename"] in download.headers["content-disposition"]
        assert download.json()["data"]["links"][0]["url"] == "https://example.com/"

        restored = client.post(f"/v1/backups/{info['id']}", json={"action": "restore"})
        assert restored.status_code == 200
        body = restored.json()
        assert body["success"] is True
        assert body["restored"]["links"] == 0
        assert body["message"] == "Backup restored successfully"

        assert client.delete(f"/v1/backups/{info['id']}").status_code == 200
        assert client.get(f"/v1/backups/{info['id']}").status_code == 404
        assert client.delete(f"/v1/backups/{info['id']}").status_code == 404


def test_backup_retention_via_api(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        for _ in range(4):
            assert client.post("/v1/backups", json={}).status_code == 200
        assert len(client.get("/v1/backups").json()) == 2


def test_restore_rejects_bad_action_and_unknown_backup(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        res = client.post("/v1/backups/whatever", json={"action": "explode"})
        assert res.status_code == 400

        res = client.post("/v1/backups/missing", json={"action": "restore"})
        assert res.status_code == 404


def test_upload_envelope(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        bad = client.post("/v1/backups", json={"importData": {"version": "1.0.0"}})
        assert bad.status_code == 400
        assert bad.json()["detail"]["error"] == "Invalid backup data format"

        env = {"version": "1.0.0", "exportedAt": "2024-01-01T00:00:00.000Z", "data": {}}
        ok = client.post("/v1/backups", json={"importData": env})
        assert ok.status_code == 200
        assert ok.json()["backup_type"] == "export"


def test_import_validation_error(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        res = client.post("/v1/links/import", json={"links": [{"url": "https://a.example/"}]})
        assert res.status_code == 400
        detail = res.json()["detail"]
        assert detail["error"] == "Validation failed"
        assert detail["details"]


def test_import_invalid_json(tmp_path, monkeypatch) -> None:
    with _client(tmp_path, monkeypatch) as client:
        for body in (b"{nope", b"", b"\xff\xfe"):
            res = client.post(
                "/v1/links/import",
                content=body,
                headers={"content-type": "application/json"},
            )
            assert res.status_code == 400
            detail = res.json()["detail"]
            assert detail["error"] == "Invalid JSON in request body"
            assert detail["details"] == ["Request body must be valid JSON"]
