# ============================================================================
# ASSET / WEBHOOK / HEALTH ROUTE TESTS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Tests - HTTP surface over the in-memory service stack
# PURPOSE: Verify routing, status mapping and response shapes end to end
# CREATED: 16 OCT 2026
# ============================================================================
"""
Asset / Webhook / Health Route Tests

Uses FastAPI TestClient over real services wired to in-memory stores
(tests.fakes.build_stack), so each request exercises the full path:
route -> service -> store -> error handler.

Run with:
    pytest tests/test_asset_routes.py -v
"""

import asyncio
import json
import time
import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api import (
    asset_router,
    health_router,
    register_error_handlers,
    RequestTimeoutMiddleware,
    set_asset_services,
    set_health_dependencies,
    set_webhook_services,
    webhook_router,
)
from core.config.defaults import ReconcileDefaults
from core.errors import UnavailableError
from infrastructure.providers.mux import sign_webhook
from services.reconciliation_service import ReconciliationService
from services.webhook_service import WebhookIngestor
from tests.fakes import build_stack


# ============================================================================
# FIXTURES
# ============================================================================

def _make_test_app(stack, reconciler=None):
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(asset_router, prefix="/api/v1")
    app.include_router(webhook_router, prefix="/api/v1")
    register_error_handlers(app)

    set_asset_services(stack.lifecycle, stack.ownership)
    set_webhook_services(WebhookIngestor(stack.lifecycle, {stack.gateway.kind: stack.gateway}))
    set_health_dependencies(stack.records, [stack.gateway.kind.value], reconciler)
    return app


@pytest.fixture
def stack():
    return build_stack()


@pytest.fixture
def client(stack):
    # One portal (one event loop) for the whole test so background retries survive
    with TestClient(_make_test_app(stack)) as test_client:
        yield test_client


def _owner_json(owner_id="lesson-1"):
    return {"owner_id": owner_id, "owner_type": "lesson"}


def _webhook(client, payload, secret="whsec_test"):
    body = json.dumps(payload).encode()
    return client.post(
        "/api/v1/webhooks/mux",
        content=body,
        headers={
            "Content-Type": "application/json",
            "Mux-Signature": sign_webhook(secret, int(time.time()), body),
        },
    )


def _create(client, **fields):
    body = {"title": "Intro", "creator_id": "user-1", **fields}
    resp = client.post("/api/v1/assets/mux/uploads", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create_ready(client, **fields):
    created = _create(client, **fields)
    asset_id = created["asset"]["asset_id"]
    resp = _webhook(client, {
        "type": "asset.ready",
        "upload_id": created["upload"]["upload_id"],
        "asset_id": f"remote-{asset_id}",
        "playback_id": f"play-{asset_id}",
        "detail": {"duration": 9.5},
    })
    assert resp.status_code == 200, resp.text
    return asset_id


# ============================================================================
# UPLOADS
# ============================================================================


class TestCreateUpload:
    def test_create(self, client, stack):
        data = _create(client, owner=_owner_json())
        assert data["asset"]["state"] == "pending"
        assert data["asset"]["provider"] == "mux"
        assert data["asset"]["owner"] == _owner_json()
        assert data["upload"]["upload_url"].startswith("https://upload.test/")
        assert data["asset"]["asset_id"] in stack.records.rows

    def test_unknown_provider_is_bad_request(self, client):
        resp = client.post("/api/v1/assets/dropbox/uploads", json={"title": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_ARGUMENT"

    def test_unconfigured_provider(self, client):
        resp = client.post("/api/v1/assets/cloudinary/uploads", json={"title": "x"})
        assert resp.status_code == 501
        assert resp.json()["error"] == "UNIMPLEMENTED"

    def test_missing_title(self, client):
        resp = client.post("/api/v1/assets/mux/uploads", json={"creator_id": "u"})
        assert resp.status_code == 400

    def test_owner_taken_conflict(self, client):
        _create(client, owner=_owner_json())
        resp = client.post(
            "/api/v1/assets/mux/uploads", json={"title": "again", "owner": _owner_json()}
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "CONFLICT"

    def test_provider_failure_is_unavailable(self, client, stack):
        stack.gateway.fail_upload = True
        resp = client.post("/api/v1/assets/mux/uploads", json={"title": "x"})
        assert resp.status_code == 503
        assert stack.records.rows == {}


# ============================================================================
# WEBHOOKS
# ============================================================================


class TestWebhooks:
    def test_ready_then_get(self, client):
        asset_id = _create_ready(client)

        resp = client.get(f"/api/v1/assets/{asset_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["state"] == "ready"
        assert data["playback_id"] == f"play-{asset_id}"
        assert data["metadata"]["title"] == "Intro"
        assert data["metadata"]["detail"]["duration"] == 9.5

    def test_ack_body(self, client):
        resp = _webhook(client, {"type": "asset.something"})
        assert resp.status_code == 200
        assert resp.json() == {"received": 1, "events": [{"type": "asset.something", "kind": "unknown"}]}

    def test_bad_signature_rejected(self, client):
        resp = _webhook(client, {"type": "asset.ready"}, secret="wrong")
        assert resp.status_code == 422
        assert resp.json()["error"] == "VALIDATION_FAILED"

    def test_missing_headers_rejected(self, client):
        resp = client.post("/api/v1/webhooks/mux", content=b"{}")
        assert resp.status_code == 422

    def test_store_outage_asks_for_redelivery(self, client, stack):
        created = _create(client)
        stack.records.fail_with = UnavailableError("db down")
        resp = _webhook(client, {
            "type": "asset.ready",
            "upload_id": created["upload"]["upload_id"],
            "asset_id": "remote-x",
        })
        assert resp.status_code == 503


# ============================================================================
# QUERIES
# ============================================================================


class TestQueries:
    def test_not_found(self, client):
        resp = client.get("/api/v1/assets/missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NOT_FOUND"

    def test_list_and_paging(self, client):
        for _ in range(3):
            _create(client)
        resp = client.get("/api/v1/assets", params={"limit": 2})
        data = resp.json()
        assert resp.status_code == 200
        assert data["total"] == 3
        assert len(data["assets"]) == 2
        assert data["limit"] == 2

    def test_limit_out_of_range(self, client):
        assert client.get("/api/v1/assets", params={"limit": 501}).status_code == 400
        assert client.get("/api/v1/assets", params={"limit": 0}).status_code == 400
        assert client.get("/api/v1/assets", params={"offset": -1}).status_code == 400

    def test_list_filtered_by_state(self, client):
        kept = _create_ready(client)
        shelved = _create_ready(client)
        _create(client)
        client.post(f"/api/v1/assets/{shelved}/archive")

        data = client.get("/api/v1/assets", params={"state": "archived"}).json()
        assert [a["asset_id"] for a in data["assets"]] == [shelved]
        data = client.get("/api/v1/assets", params={"state": "ready"}).json()
        assert [a["asset_id"] for a in data["assets"]] == [kept]
        assert client.get("/api/v1/assets").json()["total"] == 3

    def test_unknown_state_filter(self, client):
        assert client.get("/api/v1/assets", params={"state": "melted"}).status_code == 400

    def test_unowned(self, client):
        _create(client, owner=_owner_json())
        free = _create(client)
        data = client.get("/api/v1/assets/unowned").json()
        assert [a["asset_id"] for a in data["assets"]] == [free["asset"]["asset_id"]]


# ============================================================================
# OWNERSHIP
# ============================================================================


class TestOwnership:
    def test_associate_and_deassociate(self, client, stack):
        asset_id = _create_ready(client)

        resp = client.post(f"/api/v1/assets/{asset_id}/owners", json=_owner_json())
        assert resp.status_code == 200
        assert resp.json()["owner"] == _owner_json()

        resp = client.request("DELETE", f"/api/v1/assets/{asset_id}/owners", json=_owner_json())
        assert resp.status_code == 200
        assert resp.json()["owner"] is None
        assert stack.documents.docs[asset_id].owners == []

    def test_second_asset_same_owner_conflicts(self, client):
        first = _create_ready(client)
        second = _create_ready(client)
        client.post(f"/api/v1/assets/{first}/owners", json=_owner_json())
        resp = client.post(f"/api/v1/assets/{second}/owners", json=_owner_json())
        assert resp.status_code == 409

    def test_update_owners(self, client):
        asset_id = _create_ready(client, owner=_owner_json())
        resp = client.put(
            f"/api/v1/assets/{asset_id}/owners", json={"owners": [_owner_json("lesson-2")]}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["asset"]["owner"] == _owner_json("lesson-2")
        assert data["added"] == [_owner_json("lesson-2")]
        assert data["removed"] == [_owner_json()]

    def test_update_owners_rejects_two(self, client):
        asset_id = _create_ready(client)
        resp = client.put(
            f"/api/v1/assets/{asset_id}/owners",
            json={"owners": [_owner_json(), _owner_json("lesson-2")]},
        )
        assert resp.status_code == 400


# ============================================================================
# STATE CHANGES
# ============================================================================


class TestStateChanges:
    def test_archive_unarchive(self, client):
        asset_id = _create_ready(client)
        assert client.post(f"/api/v1/assets/{asset_id}/archive").json()["state"] == "archived"
        assert client.post(f"/api/v1/assets/{asset_id}/archive").status_code == 409
        assert client.post(f"/api/v1/assets/{asset_id}/unarchive").json()["state"] == "ready"

    def test_archive_pending_conflicts(self, client):
        asset_id = _create(client)["asset"]["asset_id"]
        assert client.post(f"/api/v1/assets/{asset_id}/archive").status_code == 409

    def test_soft_delete_restore(self, client):
        asset_id = _create_ready(client, owner=_owner_json())

        resp = client.delete(f"/api/v1/assets/{asset_id}")
        assert resp.status_code == 200
        assert resp.json()["deleted_at"] is not None
        assert resp.json()["owner"] is None

        assert client.get(f"/api/v1/assets/{asset_id}").status_code == 404
        got = client.get(f"/api/v1/assets/{asset_id}", params={"include_deleted": True})
        assert got.status_code == 200
        deleted = client.get("/api/v1/assets/deleted").json()
        assert [a["asset_id"] for a in deleted["assets"]] == [asset_id]

        assert client.delete(f"/api/v1/assets/{asset_id}").status_code == 409

        resp = client.post(f"/api/v1/assets/{asset_id}/restore")
        assert resp.status_code == 200
        assert resp.json()["deleted_at"] is None
        assert resp.json()["state"] == "ready"

    def test_permanent_delete(self, client, stack):
        asset_id = _create_ready(client)

        # Must be soft deleted first
        assert client.delete(f"/api/v1/assets/{asset_id}/permanent").status_code == 409

        client.delete(f"/api/v1/assets/{asset_id}")
        resp = client.delete(f"/api/v1/assets/{asset_id}/permanent")
        assert resp.status_code == 204
        assert resp.content == b""
        assert asset_id not in stack.records.rows
        assert asset_id not in stack.documents.docs
        assert stack.gateway.deleted == [f"remote-{asset_id}"]

    def test_permanent_delete_remote_failure(self, client, stack):
        asset_id = _create_ready(client)
        client.delete(f"/api/v1/assets/{asset_id}")
        stack.gateway.fail_delete = True

        resp = client.delete(f"/api/v1/assets/{asset_id}/permanent")
        assert resp.status_code == 503
        assert asset_id in stack.records.rows


# ============================================================================
# PLAYBACK
# ============================================================================


class TestPlaybackToken:
    def test_ready_asset(self, client):
        asset_id = _create_ready(client)
        resp = client.post(f"/api/v1/assets/{asset_id}/playback-token", json={"expires_in": 60})
        assert resp.status_code == 200
        assert resp.json()["token"].startswith(f"token:play-{asset_id}:")

    def test_pending_asset_conflicts(self, client):
        asset_id = _create(client)["asset"]["asset_id"]
        resp = client.post(f"/api/v1/assets/{asset_id}/playback-token", json={})
        assert resp.status_code == 409

    def test_expiry_bounds(self, client):
        asset_id = _create_ready(client)
        resp = client.post(f"/api/v1/assets/{asset_id}/playback-token", json={"expires_in": 0})
        assert resp.status_code == 400


# ============================================================================
# HEALTH
# ============================================================================


class TestHealth:
    def test_livez(self, client):
        resp = client.get("/livez")
        assert resp.status_code == 200
        assert resp.json()["status"] == "alive"

    def test_readyz(self, client):
        resp = client.get("/readyz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ready", "providers": ["mux"]}

    def test_readyz_store_down(self, client, stack):
        stack.records.fail_with = UnavailableError("db down")
        resp = client.get("/readyz")
        assert resp.status_code == 503
        assert resp.json()["reason"] == "record store unreachable"

    def test_readyz_reports_last_sweep(self, stack):
        reconciler = ReconciliationService(
            stack.records, stack.documents, stack.mirror, ReconcileDefaults(interval_seconds=0)
        )
        with TestClient(_make_test_app(stack, reconciler)) as client:
            client.post("/api/v1/assets/mux/uploads", json={"title": "x"})
            client.portal.call(reconciler.run_once)
            data = client.get("/readyz").json()
        assert data["last_reconcile"]["scanned"] == 1


# ============================================================================
# REQUEST DEADLINE
# ============================================================================


class TestRequestDeadline:
    def _app(self, timeout):
        app = FastAPI()
        app.add_middleware(RequestTimeoutMiddleware, timeout=timeout)

        @app.get("/slow")
        async def slow():
            await asyncio.sleep(1)
            return {"done": True}

        @app.get("/fast")
        async def fast():
            return {"done": True}

        return app

    def test_slow_request_is_unavailable(self):
        with TestClient(self._app(0.05)) as client:
            resp = client.get("/slow")
        assert resp.status_code == 503
        body = resp.json()
        assert body["error"] == "UNAVAILABLE"
        assert body["details"]["timeout_seconds"] == 0.05

    def test_fast_request_passes(self):
        with TestClient(self._app(0.05)) as client:
            resp = client.get("/fast")
        assert resp.status_code == 200
        assert resp.json() == {"done": True}
