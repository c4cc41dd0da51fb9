"""Tests for the webhook HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

from ghnotify import __version__
from ghnotify.config import Settings
from ghnotify.errors import DispatchError
from ghnotify.main import create_app
from ghnotify.verifier import compute_signature
from helpers import FakeClient, as_body, make_config, make_route, push_payload

SECRET = b"s3cret"


def _settings(**overrides) -> Settings:
    values = {"wait_for_dispatch": True, "dispatch_backoff_seconds": 0}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _headers(event: str = "push", body: bytes = b"", secret: bytes = None) -> dict:
    headers = {
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "Content-Type": "application/json",
    }
    if secret is not None:
        headers["X-Hub-Signature-256"] = compute_signature(secret, body)
    return headers


@pytest.fixture
def client_factory(scenario_config):
    def _make(config=None, fake=None, **settings_overrides):
        fake = fake or FakeClient()
        app = create_app(config or scenario_config, _settings(**settings_overrides), client=fake)
        return TestClient(app), fake

    return _make


class TestIndex:
    """Liveness and health endpoints."""

    def test_index(self, client_factory):
        client, _ = client_factory()
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json() == {"version": __version__, "status": 200}

    def test_health(self, client_factory):
        client, _ = client_factory()
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["repositories"] == 1

    def test_wrong_path(self, client_factory):
        client, _ = client_factory()
        assert client.post("/hook", content=b"{}").status_code == 404

    def test_wrong_method(self, client_factory):
        client, _ = client_factory()
        assert client.put("/", content=b"{}").status_code == 405


class TestRoutingScenario:
    """End-to-end routing through the HTTP surface."""

    def test_override_branch(self, client_factory):
        client, fake = client_factory()
        body = as_body(push_payload(repo="acme/app", ref="refs/heads/main"))
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.status_code == 200
        data = resp.json()
        assert data["reason"] == "delivered"
        assert data["chats"] == [200, 300]
        assert data["delivered"] == 2
        assert fake.chats_called() == frozenset({200, 300})

    def test_ignored_branch(self, client_factory):
        client, fake = client_factory()
        body = as_body(push_payload(repo="acme/app", ref="refs/heads/dev"))
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.status_code == 200
        assert resp.json()["reason"] == "suppressed"
        assert fake.calls == []

    def test_default_chats(self, client_factory):
        client, fake = client_factory()
        body = as_body(push_payload(repo="other/repo"))
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.json()["chats"] == [100]
        assert fake.chats_called() == frozenset({100})

    def test_fire_and_forget(self, client_factory):
        client, fake = client_factory(wait_for_dispatch=False)
        body = as_body(push_payload(repo="other/repo"))
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.status_code == 200
        assert resp.json()["reason"] == "accepted"
        # TestClient runs background tasks before returning
        assert fake.chats_called() == frozenset({100})

    def test_delivery_failure_still_200(self, client_factory):
        fake = FakeClient({100: [DispatchError("chat not found", transient=False)]})
        client, _ = client_factory(fake=fake)
        body = as_body(push_payload(repo="other/repo"))
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.status_code == 200
        assert resp.json()["delivered"] == 0

    def test_unknown_event_is_relayed(self, client_factory):
        client, fake = client_factory()
        body = json.dumps({"repository": {"full_name": "other/repo"}, "sender": {"login": "hubot"}}).encode()
        resp = client.post("/", content=body, headers=_headers(event="gollum", body=body))

        assert resp.status_code == 200
        assert "<code>gollum</code>" in fake.calls[0][1]


class TestSpecialDeliveries:
    """Ping and branch lifecycle pushes."""

    def test_ping(self, client_factory):
        client, fake = client_factory()
        body = json.dumps({"zen": "Design for failure.", "hook_id": 1}).encode()
        resp = client.post("/", content=body, headers=_headers(event="ping", body=body))

        assert resp.status_code == 200
        assert resp.json()["reason"] == "Design for failure."
        assert fake.calls == []

    def test_branch_creation_skipped(self, client_factory):
        client, fake = client_factory()
        body = as_body(push_payload(repo="other/repo", before="0" * 40, created=True, commits=0))
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.status_code == 200
        assert resp.json()["reason"] == "skipped"
        assert fake.calls == []


class TestAuthentication:
    """401 responses."""

    def test_signature_required(self, client_factory):
        client, fake = client_factory(config=make_config(secret=SECRET))
        body = as_body(push_payload())
        resp = client.post("/", content=body, headers=_headers(body=body))

        assert resp.status_code == 401
        assert fake.calls == []

    def test_valid_signature(self, client_factory):
        client, _ = client_factory(config=make_config(secret=SECRET))
        body = as_body(push_payload())
        resp = client.post("/", content=body, headers=_headers(body=body, secret=SECRET))
        assert resp.status_code == 200

    def test_signature_over_other_body(self, client_factory):
        client, _ = client_factory(config=make_config(secret=SECRET))
        body = as_body(push_payload())
        headers = _headers(body=b"{}", secret=SECRET)
        assert client.post("/", content=body, headers=headers).status_code == 401

    def test_token(self, client_factory):
        client, _ = client_factory(config=make_config(token="abc"))
        body = as_body(push_payload())
        assert client.post("/?token=abc", content=body, headers=_headers(body=body)).status_code == 200
        assert client.post("/?token=abd", content=body, headers=_headers(body=body)).status_code == 401
        assert client.post("/", content=body, headers=_headers(body=body)).status_code == 401

    def test_auth_checked_before_parsing(self, client_factory):
        client, _ = client_factory(config=make_config(token="abc"))
        resp = client.post("/", content=b"not json", headers=_headers())
        assert resp.status_code == 401


class TestMalformed:
    """400 responses."""

    def test_not_json(self, client_factory):
        client, _ = client_factory()
        resp = client.post("/", content=b"not json", headers=_headers())
        assert resp.status_code == 400

    def test_missing_repository(self, client_factory):
        client, _ = client_factory()
        resp = client.post("/", content=b'{"ref": "refs/heads/main"}', headers=_headers())
        assert resp.status_code == 400

    def test_missing_event_header(self, client_factory):
        client, _ = client_factory()
        body = as_body(push_payload())
        resp = client.post("/", content=body, headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert "X-GitHub-Event" in resp.json()["reason"]

    def test_deeply_nested_body(self, client_factory):
        client, fake = client_factory()
        body = b"[" * 100_000 + b"]" * 100_000
        resp = client.post("/", content=body, headers=_headers())
        assert resp.status_code == 400
        assert fake.calls == []

    def test_body_too_large(self, client_factory):
        client, fake = client_factory(max_body_bytes=64)
        body = as_body(push_payload(commits=3))
        resp = client.post("/", content=body, headers=_headers(body=body))
        assert resp.status_code == 400
        assert resp.json()["reason"] == "overflow"
        assert fake.calls == []

    def test_routes_untouched_by_bad_request(self, client_factory):
        client, fake = client_factory(config=make_config(routes=[make_route("acme/app", chats=[1])]))
        client.post("/", content=b"[]", headers=_headers())
        body = as_body(push_payload())
        assert client.post("/", content=body, headers=_headers(body=body)).json()["chats"] == [1]
