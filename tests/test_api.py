"""Endpoint tests through FastAPI's TestClient."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import database
from errors import EncodingError
from labels import encode_label

CURRENT_YEAR = datetime.now(timezone.utc).year


class TestRoot:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "message" in response.json()

    def test_startup_creates_indexes(self, monkeypatch):
        import mongomock

        from main import app

        db = mongomock.MongoClient()["startup_check"]
        monkeypatch.setattr(database, "db", db)
        with TestClient(app):
            pass

        index_keys = [info["key"] for info in db["samples"].index_information().values()]
        assert [("sample_id", 1)] in index_keys

    def test_database_check(self, client):
        response = client.get("/test")
        assert response.status_code == 200
        assert response.json()["connection_status"] == "Connected"


class TestUsers:

    def test_create_and_list(self, client):
        response = client.post("/users", json={"username": "somchai", "email": "somchai@example.com", "full_name": "Somchai"})
        assert response.status_code == 201
        body = response.json()
        assert body["username"] == "somchai"
        assert isinstance(body["_id"], str)

        users = client.get("/users").json()
        assert [u["username"] for u in users] == ["somchai"]

    def test_duplicate_username_is_400(self, client):
        client.post("/users", json={"username": "a", "email": "a@example.com"})
        response = client.post("/users", json={"username": "a", "email": "other@example.com"})
        assert response.status_code == 400

    def test_accepts_full_name_alias(self, client):
        response = client.post("/users", json={"username": "u", "email": "u@example.com", "fullName": "U Name"})
        assert response.status_code == 201
        assert response.json()["full_name"] == "U Name"
        assert client.get("/users").json()[0]["full_name"] == "U Name"

    def test_missing_email_is_400(self, client):
        response = client.post("/users", json={"username": "a"})
        assert response.status_code == 400


class TestPosts:

    def test_create_and_list(self, client):
        response = client.post("/posts", json={"title": "Hello", "content": "First post"})
        assert response.status_code == 201
        assert client.get("/posts").json()[0]["title"] == "Hello"

    def test_missing_title_is_400(self, client):
        assert client.post("/posts", json={"content": "x"}).status_code == 400


class TestSamples:

    def test_create_sample(self, client):
        response = client.post("/samples", json={"type": "Soil", "project_code": "env", "moisture": 0.31})
        assert response.status_code == 201
        body = response.json()
        assert body["sample_id"] == f"ENV-SOIL-{CURRENT_YEAR}-001"
        assert body["qr_code"].startswith("data:image/png;base64,")
        assert body["moisture"] == 0.31
        assert "created_at" in body

    def test_client_primary_key_is_ignored(self, client, mock_db):
        first = client.post("/samples", json={"type": "Soil", "_id": "fixed"})
        second = client.post("/samples", json={"type": "Soil", "_id": "fixed"})

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["sample_id"] == f"GEN-SOIL-{CURRENT_YEAR}-002"
        assert mock_db["samples"].count_documents({"_id": "fixed"}) == 0

    def test_missing_type_is_400(self, client, mock_db):
        response = client.post("/samples", json={"location": "Pond"})
        assert response.status_code == 400
        assert response.json()["detail"] == "sample type required"
        assert mock_db["samples"].count_documents({}) == 0

    def test_invalid_type_is_400(self, client):
        assert client.post("/samples", json={"type": "Rock"}).status_code == 400

    def test_conflict_is_409(self, client, seed_samples, monkeypatch):
        seed_samples(f"GEN-WATE-{CURRENT_YEAR}-001")
        monkeypatch.setattr(database, "find_max_matching", lambda *args: None)

        response = client.post("/samples", json={"type": "Water"})
        assert response.status_code == 409
        assert "retry" in response.json()["detail"]

    def test_encoding_failure_is_500(self, client, monkeypatch):
        def broken(identifier):
            raise EncodingError("boom")

        monkeypatch.setattr("samples.encode_label", broken)
        assert client.post("/samples", json={"type": "Soil"}).status_code == 500

    def test_database_unavailable_is_500(self, client, no_db):
        assert client.post("/samples", json={"type": "Soil"}).status_code == 500

    def test_get_and_filter(self, client):
        client.post("/samples", json={"type": "Soil"})
        client.post("/samples", json={"type": "Plant", "project_code": "lab"})

        sample_id = f"LAB-PLAN-{CURRENT_YEAR}-001"
        response = client.get(f"/samples/{sample_id}")
        assert response.status_code == 200
        assert response.json()["type"] == "Plant"

        assert len(client.get("/samples").json()) == 2
        only_lab = client.get("/samples", params={"project_code": "lab"}).json()
        assert [s["sample_id"] for s in only_lab] == [sample_id]
        only_soil = client.get("/samples", params={"type": "Soil"}).json()
        assert [s["sample_id"] for s in only_soil] == [f"GEN-SOIL-{CURRENT_YEAR}-001"]

    def test_unknown_sample_is_404(self, client):
        assert client.get("/samples/GEN-SOIL-1999-001").status_code == 404
        assert client.get("/samples/GEN-SOIL-1999-001/label").status_code == 404

    def test_label_png(self, client):
        sample_id = client.post("/samples", json={"type": "Insect"}).json()["sample_id"]
        response = client.get(f"/samples/{sample_id}/label")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content == encode_label(sample_id)
