import asyncio

import pytest
from fastapi import Request

from api_gateway.dependencies import get_billing_ledger
from api_gateway.main import app
from api_gateway.routes import scripts
from shared.billing import InMemoryBillingLedger
from shared.config import settings
from shared.errors import GenerationCancelledError
from shared.models.script import JobState, ScriptResponse


def test_create_script_returns_script(build_gateway, stub_client, client_for, ledger):
    gateway = build_gateway({"alpha": ["a0"]}, {"alpha": stub_client()})

    response = client_for(gateway).post(
        "/api/v1/scripts",
        json={"topic": "Truck rebuild", "total_scenes": 2, "generation_id": "gen-42"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["generation_id"] == "gen-42"
    assert body["charged"] is True
    assert body["degraded"] is False
    assert body["modes"] == ["clean", "clean"]
    assert [s["scene_number"] for s in body["script"]["scenes"]] == [1, 2]
    assert body["providers_used"] == ["alpha"]
    assert ledger.balance == 90


def test_failover_to_second_provider(build_gateway, stub_client, call_error, client_for):
    gateway = build_gateway(
        {"alpha": ["a0"], "beta": ["b0"]},
        {"alpha": stub_client({"a0": call_error(500)}), "beta": stub_client()},
    )

    response = client_for(gateway).post("/api/v1/scripts", json={"topic": "Truck", "total_scenes": 1})

    assert response.status_code == 200
    assert response.json()["providers_used"] == ["beta"]


def test_rate_limited_everywhere_is_503_with_retry_message(build_gateway, stub_client, call_error, client_for):
    gateway = build_gateway(
        {"alpha": ["a0"], "beta": ["b0"]},
        {"alpha": stub_client({"a0": call_error(429)}), "beta": stub_client({"b0": call_error(429, "beta")})},
    )

    response = client_for(gateway).post("/api/v1/scripts", json={"topic": "Truck", "total_scenes": 1})

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["dominant_failure"] == "rate_limit"
    assert "try again" in detail["message"]
    assert detail["likely_configuration_problem"] is False


def test_rejected_keys_everywhere_points_to_operator(build_gateway, stub_client, call_error, client_for):
    gateway = build_gateway(
        {"alpha": ["a0"], "beta": ["b0"]},
        {"alpha": stub_client({"a0": call_error(401)}), "beta": stub_client({"b0": call_error(403, "beta")})},
    )

    response = client_for(gateway).post("/api/v1/scripts", json={"topic": "Truck", "total_scenes": 1})

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["dominant_failure"] == "auth_or_key"
    assert "operator" in detail["message"]
    assert detail["likely_configuration_problem"] is True


def test_no_keys_configured_is_503(build_gateway, client_for):
    response = client_for(build_gateway({}, {})).post("/api/v1/scripts", json={"topic": "Truck", "total_scenes": 1})

    assert response.status_code == 503
    assert "API key configured" in response.json()["detail"]["message"]


def test_insufficient_credits_is_402(build_gateway, stub_client, client_for):
    gateway = build_gateway({"alpha": ["a0"]}, {"alpha": stub_client()})
    client = client_for(gateway)
    app.dependency_overrides[get_billing_ledger] = lambda: InMemoryBillingLedger(balance=3)

    response = client.post("/api/v1/scripts", json={"topic": "Truck", "total_scenes": 1})

    assert response.status_code == 402


def test_unknown_preferred_provider_is_400(build_gateway, client_for):
    response = client_for(build_gateway({}, {})).post(
        "/api/v1/scripts", json={"topic": "Truck", "ai_provider": "nope"}
    )

    assert response.status_code == 400


def test_empty_topic_is_rejected(build_gateway, client_for):
    response = client_for(build_gateway({}, {})).post("/api/v1/scripts", json={"topic": ""})

    assert response.status_code == 422


def _recording_generate_script(seen, result=None):
    async def _generate(request, gateway, ledger, cancel_event=None, deadline_seconds=None):
        seen["cancel_event"] = cancel_event
        seen["deadline_seconds"] = deadline_seconds
        if result is not None:
            return result
        await asyncio.wait_for(cancel_event.wait(), timeout=5)
        raise GenerationCancelledError("Client went away before any scene was generated")

    return _generate


def _empty_response():
    return ScriptResponse(
        generation_id="gen-1",
        script={"scenes": []},
        degraded=False,
        state=JobState.COMPLETE,
        modes=[],
    )


@pytest.mark.parametrize("configured,expected", [(42.0, 42.0), (0.0, None)])
def test_script_deadline_setting_is_passed_to_generation(
    monkeypatch, build_gateway, stub_client, client_for, configured, expected
):
    seen = {}
    monkeypatch.setattr(settings, "script_deadline_seconds", configured)
    monkeypatch.setattr(scripts, "generate_script", _recording_generate_script(seen, _empty_response()))
    gateway = build_gateway({"alpha": ["a0"]}, {"alpha": stub_client()})

    response = client_for(gateway).post("/api/v1/scripts", json={"topic": "Truck"})

    assert response.status_code == 200
    assert seen["deadline_seconds"] == expected
    assert isinstance(seen["cancel_event"], asyncio.Event)


def test_client_disconnect_cancels_generation(monkeypatch, build_gateway, stub_client, client_for):
    seen = {}

    async def disconnected(self):
        return True

    monkeypatch.setattr(Request, "is_disconnected", disconnected)
    monkeypatch.setattr(scripts, "generate_script", _recording_generate_script(seen))
    gateway = build_gateway({"alpha": ["a0"]}, {"alpha": stub_client()})

    response = client_for(gateway).post("/api/v1/scripts", json={"topic": "Truck"})

    assert response.status_code == 408
    assert seen["cancel_event"].is_set()


@pytest.mark.asyncio
async def test_watch_disconnect_stops_once_cancelled():
    class _ConnectedRequest:
        def __init__(self):
            self.polls = 0

        async def is_disconnected(self):
            self.polls += 1
            return False

    http_request = _ConnectedRequest()
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(scripts.watch_disconnect(http_request, cancel_event, poll_interval=0.01))

    await asyncio.sleep(0.05)
    cancel_event.set()
    await asyncio.wait_for(watcher, timeout=1)

    assert http_request.polls >= 1
