import json
from typing import Any, Dict, List, Optional

import pytest

from modules.provider_gateway.failover import FailoverResult
from shared.errors import ProvidersExhaustedError
from shared.models.provider import FailureClass


def make_scene(number: int, **overrides) -> Dict[str, Any]:
    scene = {
        "scene_number": number,
        "description": f"Scene {number} action",
        "camera": "Slow dolly",
        "visuals": {"subject": "Old truck", "environment": f"Barn {number}"},
        "characters_in_scene": [
            {"name": "Sam", "identity_anchor_prompt": "Tall mechanic, grey overalls", "current_role": "Mechanic"}
        ],
        "audio_mix": {"audio_content_in_English": f"Narration {number}"},
    }
    scene.update(overrides)
    return scene


def scenes_json(*numbers: int, **script_fields) -> str:
    payload = dict(script_fields)
    payload["scenes"] = [make_scene(n) for n in numbers]
    return json.dumps(payload)


def exhausted(dominant: FailureClass = FailureClass.RATE_LIMIT) -> ProvidersExhaustedError:
    return ProvidersExhaustedError(
        "All providers failed",
        total_attempts=3,
        failure_counts={dominant.value: 3},
        providers_tried=["alpha"],
        dominant_failure=dominant.value,
    )


class FakeGateway:
    """
    Gateway returning scripted outcomes per call.

    Each outcome is raw text (returned) or an exception (raised).
    """

    def __init__(self, outcomes: List[Any], provider: str = "alpha", on_call=None):
        self.outcomes = list(outcomes)
        self.provider = provider
        self.catalog = {"alpha", "beta"}
        self.on_call = on_call
        self.calls: List[Dict[str, Any]] = []

    async def generate_text(self, messages, preferred_provider: Optional[str] = None, cancel_event=None):
        self.calls.append({"messages": messages, "preferred_provider": preferred_provider})
        if self.on_call is not None:
            self.on_call(len(self.calls))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FailoverResult(value=outcome, provider=self.provider, attempts=[])


def echo_prompt_builder(start, end, anchor):
    return [{"role": "user", "content": f"{start}-{end}"}, {"role": "system", "content": anchor}]


@pytest.fixture()
def fake_gateway():
    return FakeGateway


@pytest.fixture()
def prompt_builder():
    return echo_prompt_builder


@pytest.fixture()
def scene_factory():
    return make_scene


@pytest.fixture()
def script_text():
    return scenes_json


@pytest.fixture()
def exhausted_error():
    return exhausted
