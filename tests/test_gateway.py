"""End-to-end tests through the unified gateway app."""

import time

import pytest
from fastapi.testclient import TestClient

from app import app
from conftest import make_slide, make_slides
from services.runtime import services


def _slide_payload(slide):
    return slide.model_dump(by_alias=True)


def _wait_for_job(client, slide_key, status="ready", timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        response = client.get(f"/api/jobs/{slide_key}")
        if response.status_code == 200 and response.json()["status"] == status:
            return response.json()
        time.sleep(0.01)
    raise AssertionError(f"{slide_key} never reached {status}")


@pytest.fixture
def client(wired_services):
    with TestClient(app) as test_client:
        yield test_client


class TestGatewayRoutes:
    def test_root_lists_services(self, client):
        body = client.get("/").json()

        assert body["services"]["conversation"]["base_url"] == "/api/conversation"

    def test_health_reports_providers_and_scheduler(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["services"]["scheduler"] == "running"
        assert body["providers"]["text_gen"] == "available"
        assert body["providers"]["speech"] == "available"
        assert "entries" in body["audioCache"]

    def test_service_routes_are_mounted(self):
        paths = {route.path for route in app.routes}

        assert {"/api/narrate", "/api/audio/{audio_ref}", "/api/slides/process", "/api/conversation/chat"} <= paths
        assert "/api/conversation/health" in paths


class TestNarrationThroughGateway:
    def test_narrate_then_cached(self, client, text_driver, speech_driver):
        slide = make_slide(1, 3)

        first = client.post("/api/narrate", json={"slide": _slide_payload(slide)})
        second = client.post("/api/narrate", json={"slide": _slide_payload(slide)})

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["audioRef"] == first.json()["audioRef"]
        assert text_driver.calls == 1
        assert speech_driver.calls == 1

    def test_pregenerate_is_idempotent(self, client, text_driver, speech_driver):
        slide = _slide_payload(make_slide(2, 3))

        first = client.post("/api/pregenerate-audio", json={"slide": slide})
        second = client.post("/api/pregenerate-audio", json={"slide": slide})

        assert first.json()["status"] == "ready"
        assert second.json()["status"] == "ready"
        assert second.json()["audioRef"] == first.json()["audioRef"]
        assert second.json()["audioUrl"] == f"/api/audio/{first.json()['audioRef']}"
        assert text_driver.calls == 1
        assert speech_driver.calls == 1

    def test_pregenerate_out_of_range_slide(self, client):
        slide = _slide_payload(make_slide(1, 3))
        slide["ordinal"] = 0

        response = client.post("/api/pregenerate-audio", json={"slide": slide})

        assert response.status_code == 422

    def test_advance_schedules_high_then_low(self, client):
        slides = make_slides(4)

        response = client.post(
            "/api/advance",
            json={"slides": [_slide_payload(slide) for slide in slides], "currentIndex": 0},
        )

        body = response.json()
        assert response.status_code == 200
        assert [job["slideKey"] for job in body["scheduled"]] == [slides[1].slide_key]
        assert body["scheduled"][0]["priority"] == "high"
        assert body["deferred"] == [slides[2].slide_key]

        assert _wait_for_job(client, slides[1].slide_key)["priority"] == "high"
        assert _wait_for_job(client, slides[2].slide_key)["priority"] == "low"

    def test_advance_past_the_end(self, client):
        response = client.post(
            "/api/advance",
            json={"slides": [_slide_payload(make_slide(1, 1))], "currentIndex": 3},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["errorCode"] == "SLIDE_OUT_OF_RANGE"

    def test_unknown_job(self, client):
        response = client.get("/api/jobs/nope:1")

        assert response.status_code == 404
        assert response.json()["detail"]["errorCode"] == "JOB_NOT_FOUND"

    def test_cancel_unknown_job(self, client):
        assert client.delete("/api/jobs/nope:1").status_code == 404

    def test_text_failure_still_narrates(self, client, text_driver):
        text_driver.fail = True

        response = client.post("/api/narrate", json={"slide": _slide_payload(make_slide(1, 3))})

        assert response.status_code == 200
        assert response.json()["generatedBy"] == "template"


class TestAudioThroughGateway:
    def test_range_request_on_pregenerated_audio(self, client, speech_driver):
        speech_driver.data = bytes(index % 251 for index in range(500))
        audio_ref = client.post(
            "/api/pregenerate-audio", json={"slide": _slide_payload(make_slide(1, 3))}
        ).json()["audioRef"]

        response = client.get(f"/api/audio/{audio_ref}", headers={"Range": "bytes=0-99"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 0-99/500"
        assert response.headers["content-length"] == "100"
        assert response.content == speech_driver.data[:100]

    def test_missing_audio(self, client):
        assert client.get("/api/audio/unknown").status_code == 404


class TestCleanupThroughGateway:
    def test_cleanup_clears_everything(self, client, audio_cache):
        client.post("/api/pregenerate-audio", json={"slide": _slide_payload(make_slide(1, 3))})
        client.post("/api/conversation/session/init", json={"sessionId": "demo"})

        response = client.post("/api/cleanup", json={})

        body = response.json()
        assert response.status_code == 200
        assert body["removed"]["audio"] == 1
        assert body["removed"]["sessions"] == 1
        assert body["removed"]["jobs"] == 1
        assert audio_cache.stats()["entries"] == 0
        assert client.get("/api/jobs").json() == []

    def test_cleanup_with_age_keeps_fresh_audio(self, client, audio_cache):
        client.post("/api/pregenerate-audio", json={"slide": _slide_payload(make_slide(1, 3))})

        response = client.post("/api/cleanup", json={"maxAgeDays": 1})

        assert response.json()["removed"]["audio"] == 0
        assert audio_cache.stats()["entries"] == 1


class TestConversationThroughGateway:
    def test_chat_round_trip(self, client, text_driver):
        client.post(
            "/api/conversation/session/init",
            json={"sessionId": "gateway", "slideContext": {"slides": [{"title": "Turbines", "content": "wind turbine rollout"}]}},
        )

        response = client.post(
            "/api/conversation/chat",
            json={"sessionId": "gateway", "message": "Can you explain the turbine rollout?"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["message"] == text_driver.reply
        assert body["audioUrl"] == f"/api/audio/{body['audioRef']}"
        assert services.conversation_manager.get("gateway").metrics.total_questions == 1

    def test_chat_without_session_id(self, client):
        response = client.post("/api/conversation/chat", json={"message": "hello"})

        assert response.status_code == 400
        assert response.json()["detail"]["errorCode"] == "MISSING_SESSION_ID"
