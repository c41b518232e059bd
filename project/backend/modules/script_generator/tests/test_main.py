import pytest

from modules.script_generator import main as script_main
from shared.billing import InMemoryBillingLedger
from shared.errors import BudgetExceededError, ProvidersExhaustedError, ValidationError
from shared.models.script import JobState, RecoveryMode, ScriptRequest


@pytest.fixture(autouse=True)
def no_pacing(monkeypatch):
    monkeypatch.setattr(script_main.settings, "script_batch_delay", 0.0)
    monkeypatch.setattr(script_main.settings, "script_batch_size", 1)
    monkeypatch.setattr(script_main.settings, "script_credits_per_generation", 10)


@pytest.mark.asyncio
async def test_generate_script_builds_and_charges_once(fake_gateway, script_text):
    gateway = fake_gateway([script_text(1, title="Barn Find"), script_text(2)])
    ledger = InMemoryBillingLedger(balance=100)
    request = ScriptRequest(topic="Truck rebuild", total_scenes=2, generation_id="gen-1", niche="car-restoration")

    response = await script_main.generate_script(request, gateway, ledger)

    assert response.generation_id == "gen-1"
    assert response.charged is True
    assert ledger.balance == 90
    assert response.state == JobState.COMPLETE
    assert response.modes == [RecoveryMode.CLEAN, RecoveryMode.CLEAN]
    scenes = response.script["scenes"]
    assert [s["scene_number"] for s in scenes] == [1, 2]
    assert scenes[1]["description"].startswith("SCENE 2\n")
    assert response.script["title"] == "Barn Find"


@pytest.mark.asyncio
async def test_retrying_same_generation_does_not_charge_twice(fake_gateway, script_text):
    ledger = InMemoryBillingLedger(balance=100)
    request = ScriptRequest(topic="Truck rebuild", total_scenes=1, generation_id="gen-1")

    await script_main.generate_script(request, fake_gateway([script_text(1)]), ledger)
    response = await script_main.generate_script(request, fake_gateway([script_text(1)]), ledger)

    assert response.charged is False
    assert ledger.balance == 90


@pytest.mark.asyncio
async def test_continuation_without_generation_id_is_not_charged(fake_gateway, script_text):
    ledger = InMemoryBillingLedger(balance=100)
    request = ScriptRequest(topic="Truck rebuild", total_scenes=1, start_scene=3)

    response = await script_main.generate_script(request, fake_gateway([script_text(1)]), ledger)

    assert response.charged is False
    assert ledger.charges == {}


@pytest.mark.asyncio
async def test_insufficient_credits_stop_before_generation(fake_gateway, script_text):
    gateway = fake_gateway([script_text(1)])
    ledger = InMemoryBillingLedger(balance=5)

    with pytest.raises(BudgetExceededError):
        await script_main.generate_script(ScriptRequest(topic="Truck", total_scenes=1), gateway, ledger)

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_unknown_provider_is_rejected(fake_gateway):
    with pytest.raises(ValidationError):
        await script_main.generate_script(
            ScriptRequest(topic="Truck", ai_provider="nope"),
            fake_gateway([]),
            InMemoryBillingLedger(),
        )


@pytest.mark.asyncio
async def test_exhaustion_propagates_without_charge(fake_gateway, exhausted_error):
    ledger = InMemoryBillingLedger(balance=100)

    with pytest.raises(ProvidersExhaustedError):
        await script_main.generate_script(
            ScriptRequest(topic="Truck", total_scenes=1), fake_gateway([exhausted_error()]), ledger
        )

    assert ledger.balance == 100


@pytest.mark.asyncio
async def test_preferred_provider_and_voice_setting_flow_through(fake_gateway, script_text):
    gateway = fake_gateway([script_text(1)])
    request = ScriptRequest(topic="Truck", total_scenes=1, ai_provider="beta", voice_enabled=False)

    response = await script_main.generate_script(request, gateway, InMemoryBillingLedger())

    assert gateway.calls[0]["preferred_provider"] == "beta"
    system_prompt = gateway.calls[0]["messages"][0]["content"]
    assert "Voice Over: DISABLED." in system_prompt
    assert "narration_text" not in response.script["scenes"][0]


@pytest.mark.asyncio
async def test_degraded_result_is_reported(fake_gateway, script_text, exhausted_error):
    gateway = fake_gateway([script_text(1), exhausted_error(), script_text(3)])

    response = await script_main.generate_script(
        ScriptRequest(topic="Truck", total_scenes=3), gateway, InMemoryBillingLedger()
    )

    assert response.degraded is True
    assert response.skipped_ranges == [(2, 2)]
    assert len(response.script["scenes"]) == 2


def test_resolve_scene_count():
    assert script_main.resolve_scene_count(ScriptRequest(topic="x", total_scenes=500)) == 113
    assert script_main.resolve_scene_count(ScriptRequest(topic="x", total_scenes=0)) == 1
    assert script_main.resolve_scene_count(ScriptRequest(topic="x", video_duration=2)) == 15
    assert script_main.resolve_scene_count(ScriptRequest(topic="x")) == 8


@pytest.mark.asyncio
async def test_reseed_after_failed_first_batch_asks_for_batch_width(
    monkeypatch, fake_gateway, script_text, exhausted_error
):
    monkeypatch.setattr(script_main.settings, "script_batch_size", 2)
    gateway = fake_gateway([exhausted_error(), script_text(2, 3)])

    response = await script_main.generate_script(
        ScriptRequest(topic="Truck", total_scenes=3), gateway, InMemoryBillingLedger()
    )

    reseed_prompt = gateway.calls[1]["messages"][1]["content"]
    assert "exactly 2 scenes" in reseed_prompt
    assert response.skipped_ranges == [(1, 1)]
    assert len(response.script["scenes"]) == 2
