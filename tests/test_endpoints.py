import ai_client
import github_ops
from models import Project

from conftest import FakeResponse


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_debug_hides_secrets(client, settings):
    body = client.get("/debug").json()
    assert body["OPENROUTER_API_KEY_set"] is True
    assert settings.openrouter_api_key not in str(body)
    assert body["fallback_model"] == "m/fallback"


class TestImage:

    def test_missing_prompt(self, client):
        assert client.post("/api/image", json={"prompt": ""}).status_code == 400
        assert client.post("/api/image", json={"prompt": 5}).status_code == 400

    def test_missing_key(self, client, settings):
        settings.openrouter_api_key = None
        r = client.post("/api/image", json={"prompt": "a fox"})
        assert r.status_code == 401

    def test_success_uses_header_key_and_default_model(self, client, monkeypatch):
        seen = {}

        def post(url, headers=None, json=None, timeout=None):
            seen.update(headers=headers, json=json)
            return FakeResponse(200, {"data": [{"url": "https://img/fox.png"}]})

        monkeypatch.setattr(ai_client.requests, "post", post)
        r = client.post("/api/image", json={"prompt": "a fox"}, headers={"x-openrouter-key": "sk-img"})
        assert r.status_code == 200
        assert r.json() == {"type": "url", "url": "https://img/fox.png", "model": "stability/stable-diffusion-xl"}
        assert seen["headers"]["Authorization"] == "Bearer sk-img"
        assert seen["json"]["size"] == "1024x1024"

    def test_upstream_status_is_passed_through(self, client, monkeypatch):
        monkeypatch.setattr(ai_client.requests, "post", lambda *a, **kw: FakeResponse(429, None, "slow down"))
        r = client.post("/api/image", json={"prompt": "a fox"})
        assert r.status_code == 429
        assert r.json() == {"error": "Image API error: 429", "details": "slow down"}

    def test_upstream_server_error_keeps_details(self, client, monkeypatch):
        monkeypatch.setattr(ai_client.requests, "post", lambda *a, **kw: FakeResponse(500, None, "boom"))
        r = client.post("/api/image", json={"prompt": "a fox"})
        assert r.status_code == 500
        assert r.json() == {"error": "Image API error: 500", "details": "boom"}

    def test_unrecognized_body_is_reported_raw(self, client, monkeypatch):
        monkeypatch.setattr(ai_client.requests, "post", lambda *a, **kw: FakeResponse(200, {"status": "queued"}))
        r = client.post("/api/image", json={"prompt": "a fox"})
        assert r.status_code == 500
        assert r.json() == {"error": "Unrecognized image response format", "raw": {"status": "queued"}}


class TestDeploy:

    def test_deploy_records_snapshot_and_url(self, client, store):
        project = store.projects.save(Project(id="abcdef123456", name="Demo", files={"/index.html": "<h1>hi</h1>"}))
        r = client.post("/api/deploy", json={"projectId": project.id})
        body = r.json()
        assert r.status_code == 200
        assert body["success"] is True
        assert body["deploymentUrl"] == "https://project-abcdef12.vercel.app"

        deployment = store.deployments.get(body["deploymentId"])
        assert deployment.snapshot_files == {"/index.html": "<h1>hi</h1>"}
        assert store.projects.get(project.id).deployment_url == body["deploymentUrl"]

    def test_deploy_with_explicit_files(self, client, store):
        r = client.post("/api/deploy", json={"projectId": "p1", "files": {"/a.js": {"content": "x"}, "/b.css": "y"}})
        deployment = store.deployments.get(r.json()["deploymentId"])
        assert deployment.snapshot_files == {"/a.js": "x", "/b.css": "y"}

    def test_deploy_without_project_id(self, client):
        r = client.post("/api/deploy", json={})
        assert r.status_code == 500
        assert r.json() == {"success": False, "error": "Deployment failed"}


class FakeGitHub:

    def __init__(self, repo_exists=True, put_status=201):
        self.repo_exists = repo_exists
        self.put_status = put_status
        self.puts = []

    def get(self, url, headers=None, params=None, timeout=None):
        if "/contents/" in url:
            return FakeResponse(404, None)
        return FakeResponse(200 if self.repo_exists else 404, {})

    def post(self, url, headers=None, json=None, timeout=None):
        return FakeResponse(201, {})

    def put(self, url, headers=None, json=None, timeout=None):
        self.puts.append((url, json))
        return FakeResponse(self.put_status, {}, "nope")


def _patch_github(monkeypatch, fake):
    monkeypatch.setattr(github_ops.requests, "get", fake.get)
    monkeypatch.setattr(github_ops.requests, "post", fake.post)
    monkeypatch.setattr(github_ops.requests, "put", fake.put)


class TestGitHub:

    def test_requires_owner_repo_token(self, client):
        r = client.post("/api/github", json={"owner": "me", "repo": "site"})
        assert r.status_code == 400
        assert r.json() == {"error": "Missing owner/repo/token"}

    def test_requires_files(self, client):
        r = client.post("/api/github", json={"owner": "me", "repo": "site", "token": "t"})
        assert r.status_code == 400
        assert r.json() == {"error": "No files provided"}

    def test_publishes_body_files(self, client, monkeypatch):
        fake = FakeGitHub()
        _patch_github(monkeypatch, fake)
        r = client.post("/api/github", json={
            "owner": "me", "repo": "site", "token": "t",
            "files": [{"path": "/index.html", "content": "<p>x</p>"}],
        })
        assert r.status_code == 200
        assert r.json() == {"ok": True, "url": "https://github.com/me/site/tree/main"}
        url, payload = fake.puts[0]
        assert url.endswith("/repos/me/site/contents/index.html")
        assert payload["branch"] == "main"

    def test_publishes_deployment_snapshot(self, client, store, monkeypatch):
        fake = FakeGitHub()
        _patch_github(monkeypatch, fake)
        deploy = client.post("/api/deploy", json={"projectId": "p1", "files": {"/a.txt": "A", "/b.txt": "B"}}).json()
        r = client.post("/api/github", json={
            "owner": "me", "repo": "site", "token": "t", "branch": "gh-pages",
            "deploymentId": deploy["deploymentId"],
        })
        assert r.status_code == 200
        assert r.json()["url"].endswith("/tree/gh-pages")
        assert sorted(u.rsplit("/", 1)[-1] for u, _ in fake.puts) == ["a.txt", "b.txt"]

    def test_publishes_project_files(self, client, store, monkeypatch):
        fake = FakeGitHub()
        _patch_github(monkeypatch, fake)
        project = store.projects.save(Project(name="Site", files={"/index.html": "x", "/css/site.css": "y"}))
        r = client.post("/api/github", json={
            "owner": "me", "repo": "site", "token": "t", "projectId": project.id,
        })
        assert r.status_code == 200
        assert sorted(u.split("/contents/", 1)[-1] for u, _ in fake.puts) == ["css/site.css", "index.html"]

    def test_unknown_project_has_no_files(self, client, monkeypatch):
        fake = FakeGitHub()
        _patch_github(monkeypatch, fake)
        r = client.post("/api/github", json={"owner": "me", "repo": "site", "token": "t", "projectId": "nope"})
        assert r.status_code == 400
        assert r.json() == {"error": "No files provided"}
        assert fake.puts == []

    def test_repo_not_creatable_is_400(self, client, monkeypatch):
        fake = FakeGitHub(repo_exists=False)
        _patch_github(monkeypatch, fake)
        r = client.post("/api/github", json={
            "owner": "me", "repo": "site", "token": "t", "createRepo": False,
            "files": [{"path": "a.txt", "content": "A"}],
        })
        assert r.status_code == 400
        assert fake.puts == []

    def test_write_failure_is_500(self, client, monkeypatch):
        _patch_github(monkeypatch, FakeGitHub(put_status=409))
        r = client.post("/api/github", json={
            "owner": "me", "repo": "site", "token": "t",
            "files": [{"path": "a.txt", "content": "A"}],
        })
        assert r.status_code == 500
        assert "a.txt" in r.json()["error"]


class TestRecords:

    def test_project_lifecycle(self, client):
        created = client.post("/api/projects", json={"name": "Todo", "template": "react"}).json()
        pid = created["id"]
        assert client.get(f"/api/projects/{pid}").json()["name"] == "Todo"

        updated = client.put(f"/api/projects/{pid}", json={"description": "lists", "isPublic": True}).json()
        assert updated["description"] == "lists"
        assert updated["isPublic"] is True
        assert updated["name"] == "Todo"

        assert [p["id"] for p in client.get("/api/projects").json()] == [pid]
        assert client.delete(f"/api/projects/{pid}").json() == {"ok": True}
        assert client.get(f"/api/projects/{pid}").status_code == 404
        assert client.delete(f"/api/projects/{pid}").status_code == 404

    def test_create_project_requires_name(self, client):
        assert client.post("/api/projects", json={"template": "x"}).status_code == 400

    def test_save_file_derives_path(self, client):
        pid = client.post("/api/projects", json={"name": "App"}).json()["id"]
        r = client.post(f"/api/projects/{pid}/files", json={"language": "python", "content": "def main():\n    pass\n"})
        assert r.json()["path"] == "/src/main.py"
        assert "/src/main.py" in r.json()["project"]["files"]

        r = client.post(f"/api/projects/{pid}/files", json={"path": "My Folder/Hello World.JS", "content": "x"})
        assert r.json()["path"] == "/my-folder/hello-world.js"

    def test_save_file_unknown_project(self, client):
        r = client.post("/api/projects/missing/files", json={"content": "x"})
        assert r.status_code == 404

    def test_suggest_path(self, client):
        r = client.post("/api/files/suggest-path", json={"language": "html", "content": "<html></html>"})
        assert r.json() == {"path": "/public/index.html", "fileName": "index.html"}

    def test_conversation_lifecycle(self, client):
        conv = client.post("/api/conversations").json()
        assert conv["title"] == "New Chat"
        cid = conv["id"]

        assert client.patch(f"/api/conversations/{cid}", json={"title": "Renamed"}).json()["title"] == "Renamed"
        after = client.post(f"/api/conversations/{cid}/messages", json={"role": "user", "content": "hey"}).json()
        assert after["messages"][0]["content"] == "hey"
        mem = client.put(f"/api/conversations/{cid}/memory", json={"summary": "s", "keywords": ["k"]}).json()
        assert mem["memory"] == {"summary": "s", "keywords": ["k"]}

        assert len(client.get("/api/conversations").json()) == 1
        assert client.delete(f"/api/conversations/{cid}").json() == {"ok": True}
        assert client.get(f"/api/conversations/{cid}").status_code == 404

    def test_bad_message_role(self, client):
        cid = client.post("/api/conversations", json={}).json()["id"]
        r = client.post(f"/api/conversations/{cid}/messages", json={"role": "robot", "content": "x"})
        assert r.status_code == 400
