"""Tests for FastAPI endpoints - previews, generation and workspaces."""

import json
import re
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from errors import ModelError, StoreError
from kv_store import MemoryKVStore
from model_client import ModelResult
from preview_lifecycle import PreviewLifecycle
from preview_store import PreviewSessionStore
from project_service import ProjectService
from prompt_manager import PromptManager

HELLO_FILE_SET = [
    {"path": "index.html", "type": "file", "content": "<div id='x'></div>", "language": "html"},
    {"path": "a.css", "type": "file", "content": "body{color:red}", "language": "css"},
    {"path": "a.js", "type": "file", "content": "document.getElementById('x').textContent='hi'",
     "language": "javascript"},
]


@pytest.fixture
def services():
    """In-memory stores, a mocked model and the real service layer."""
    workspace_store = MemoryKVStore()
    metadata_store = MemoryKVStore()
    model = MagicMock()
    model.run.return_value = ModelResult(response="ok", usage={})
    return {
        "workspace_store": workspace_store,
        "metadata_store": metadata_store,
        "model": model,
        "lifecycle": PreviewLifecycle(PreviewSessionStore(workspace_store)),
        "projects": ProjectService(model, PromptManager(), metadata_store, workspace_store),
    }


@pytest.fixture
def client(services):
    """Create FastAPI test client with in-memory services."""
    from main import app, init_services

    init_services(services["lifecycle"], services["projects"])
    with TestClient(app) as client:
        yield client


def create_preview(client, owner="user-1", **extra):
    body = {"ownerId": owner, "fileSet": HELLO_FILE_SET, "project": {"name": "Hello", "framework": "plain"}}
    body.update(extra)
    return client.post("/api/create-preview", json=body)


class TestCreatePreview:
    """Tests for POST /api/create-preview."""

    def test_create_preview_success(self, client):
        response = create_preview(client)

        assert response.status_code == 200
        data = response.json()
        assert re.match(r"^prev_\d{13,}_[a-f0-9]{12}$", data["sessionId"])
        assert data["previewUrl"].endswith(f"/preview/{data['sessionId']}")
        assert "expiresAt" in data

    def test_deploy_preview_alias(self, client):
        response = client.post("/api/deploy-preview", json={"ownerId": "user-1", "fileSet": HELLO_FILE_SET})

        assert response.status_code == 200

    def test_owner_from_header(self, client, services):
        response = client.post("/api/create-preview", json={"fileSet": HELLO_FILE_SET},
                               headers={"X-User-ID": "header-user"})

        assert response.status_code == 200
        session = services["lifecycle"].get(response.json()["sessionId"])
        assert session.owner_id == "header-user"

    def test_missing_owner(self, client):
        response = client.post("/api/create-preview", json={"fileSet": HELLO_FILE_SET})

        assert response.status_code == 400
        assert response.json()["error"] == "Owner ID required"

    def test_duplicate_paths_rejected(self, client):
        files = [{"path": "a.js", "content": "1"}, {"path": "a.js", "content": "2"}]

        response = client.post("/api/create-preview", json={"ownerId": "user-1", "fileSet": files})

        assert response.status_code == 400

    def test_malformed_file_entry_rejected(self, client):
        response = client.post("/api/create-preview", json={"ownerId": "user-1", "fileSet": [{"content": "x"}]})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_requires_file_set_or_project(self, client):
        response = client.post("/api/create-preview", json={"ownerId": "user-1"})

        assert response.status_code == 400

    def test_unknown_source_project(self, client):
        response = client.post("/api/create-preview", json={
            "ownerId": "user-1", "sourceProjectId": "proj_1769256000000_abcdef123456"
        })

        assert response.status_code == 404
        assert response.json()["error"] == "Project not found"

    def test_create_from_generated_project(self, client, services):
        services["model"].run.return_value = ModelResult(response=json.dumps({"project": {
            "name": "counter",
            "framework": "react",
            "structure": [{"path": "page.jsx", "content": "export default function Page() { return null; }"}],
        }}))
        project_id = client.post("/api/generate-project", json={
            "userId": "user-1", "requirements": "a counter", "framework": "react"
        }).json()["projectId"]

        response = client.post("/api/create-preview", json={"ownerId": "user-1", "sourceProjectId": project_id})

        assert response.status_code == 200
        session = services["lifecycle"].get(response.json()["sessionId"])
        assert session.source_project_id == project_id
        assert session.project_descriptor.framework == "react"
        assert [f.path for f in session.file_set] == ["page.jsx"]

    def test_store_failure_returns_500(self, services):
        from main import app, init_services

        broken_store = MagicMock()
        broken_store.save.side_effect = StoreError("R2 unreachable")
        init_services(PreviewLifecycle(broken_store), services["projects"])

        with TestClient(app) as client:
            response = create_preview(client)

        assert response.status_code == 500
        assert response.json()["error"] == "Storage unavailable"


class TestRenderPreview:
    """Tests for GET /preview/<id>."""

    def test_render_created_preview(self, client):
        session_id = create_preview(client).json()["sessionId"]

        response = client.get(f"/preview/{session_id}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.text.startswith("<!DOCTYPE html>")
        assert '<h1 class="preview-title">Hello</h1>' in response.text
        assert 'id="preview-frame"' in response.text

    def test_unknown_preview(self, client):
        response = client.get("/preview/prev_1769256000000_abcdef123456")

        assert response.status_code == 404

    def test_malformed_preview_id(self, client):
        response = client.get("/preview/not-an-id")

        assert response.status_code == 404


class TestPreviewStatus:
    """Tests for GET /api/preview-status."""

    def test_status(self, client):
        session_id = create_preview(client).json()["sessionId"]

        response = client.get(f"/api/preview-status?sessionId={session_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == session_id
        assert data["status"] == "active"

    def test_status_requires_session_id(self, client):
        assert client.get("/api/preview-status").status_code == 400

    def test_status_unknown(self, client):
        response = client.get("/api/preview-status?sessionId=prev_1769256000000_abcdef123456")

        assert response.status_code == 404
        assert response.json()["error"] == "Preview not found"


class TestListPreviews:
    """Tests for GET /api/previews."""

    def test_lists_owner_previews(self, client):
        ids = {create_preview(client, owner="alice").json()["sessionId"] for _ in range(3)}
        create_preview(client, owner="bob")

        response = client.get("/api/previews", headers={"X-User-ID": "alice"})

        assert response.status_code == 200
        previews = response.json()["previews"]
        assert {p["id"] for p in previews} == ids
        assert all(p["ownerId"] == "alice" for p in previews)
        assert previews[0]["fileSet"][0]["path"] == "index.html"

    def test_owner_from_query(self, client):
        create_preview(client, owner="alice")

        response = client.get("/api/previews?userId=alice")

        assert len(response.json()["previews"]) == 1

    def test_requires_owner(self, client):
        assert client.get("/api/previews").status_code == 400


class TestGeneration:
    """Tests for chat, generate-project and fix-code."""

    def test_chat(self, client, services):
        services["model"].run.return_value = ModelResult(response="Use the App Router.", usage={"total_tokens": 5})

        response = client.post("/api/chat", json={"message": "How?", "userId": "user-1", "projectType": "nextjs"})

        assert response.status_code == 200
        assert response.json()["response"] == "Use the App Router."

    def test_chat_requires_user(self, client):
        response = client.post("/api/chat", json={"message": "How?"})

        assert response.status_code == 400
        assert response.json()["error"] == "User ID required"

    def test_chat_requires_message(self, client):
        assert client.post("/api/chat", json={"userId": "user-1"}).status_code == 400

    def test_model_failure_returns_502(self, client, services):
        services["model"].run.side_effect = ModelError("upstream 500")

        response = client.post("/api/chat", json={"message": "How?", "userId": "user-1"})

        assert response.status_code == 502
        assert response.json()["error"] == "Model request failed"

    def test_generate_requires_requirements(self, client):
        response = client.post("/api/generate-project", json={"userId": "user-1"})

        assert response.status_code == 400
        assert response.json()["error"] == "User ID and requirements are required"

    def test_generated_project_listed(self, client, services):
        services["model"].run.return_value = ModelResult(response='{"structure": []}')
        project_id = client.post("/api/generate-project", json={
            "userId": "user-1", "requirements": "blank", "projectName": "Blank"
        }).json()["projectId"]

        response = client.get("/api/user-projects", headers={"X-User-ID": "user-1"})

        projects = response.json()["projects"]
        assert [p["id"] for p in projects] == [project_id]
        assert projects[0]["name"] == "Blank"

    def test_fix_code(self, client, services):
        services["model"].run.return_value = ModelResult(response="```js\nconst a = 1;\n```")

        response = client.post("/api/fix-code", json={"code": "const a = ;", "error": "SyntaxError"})

        assert response.status_code == 200
        assert response.json()["fixedCode"] == "const a = 1;"


class TestWorkspace:
    """Tests for save-workspace and load-workspace."""

    def test_save_then_load(self, client):
        files = [{"path": "index.html", "content": "<p>hi</p>"}]

        saved = client.post("/api/save-workspace", json={
            "userId": "user-1", "projectId": "p1", "files": files, "currentFile": "index.html"
        })
        loaded = client.get("/api/load-workspace?projectId=p1", headers={"X-User-ID": "user-1"})

        assert saved.json()["success"] is True
        assert loaded.status_code == 200
        assert loaded.json()["files"] == files
        assert loaded.json()["lastSaved"] == saved.json()["savedAt"]

    def test_save_requires_ids(self, client):
        assert client.post("/api/save-workspace", json={"userId": "user-1"}).status_code == 400

    def test_load_missing(self, client):
        response = client.get("/api/load-workspace?userId=user-1&projectId=nope")

        assert response.status_code == 404
        assert response.json()["error"] == "Workspace not found"

    def test_user_projects_requires_user(self, client):
        assert client.get("/api/user-projects").status_code == 400

    @pytest.mark.parametrize("user_id", ["a/b", "x" * 200])
    def test_unsafe_user_ids_rejected(self, client, user_id):
        assert client.get("/api/user-projects", headers={"X-User-ID": user_id}).status_code == 400
        assert client.get("/api/load-workspace?projectId=p1", headers={"X-User-ID": user_id}).status_code == 400
        assert client.post("/api/save-workspace", json={"userId": user_id, "projectId": "p1"}).status_code == 400


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Code Preview Builder API"
