from __future__ import annotations

import pytest

from commands.exposure import ExposureMode, ExposurePolicy
from commands.exposure_config import ExposureConfigError, load_exposure_settings


def test_shipped_tables_load():
    settings = load_exposure_settings()
    policy = ExposurePolicy(settings)

    assert policy.mode_for(880141088722141294, "rng.roll") is ExposureMode.QUESTION
    assert policy.mode_for(329934860388925442, "rng.roll") is ExposureMode.BANG
    assert policy.mode_for(1, "rng.roll") is ExposureMode.BANG


def test_channel_policy_is_parsed_to_ids():
    settings = load_exposure_settings(
        "bang",
        overrides={},
        channel_policies={"42": {"rng.awesome": {"allow": ["7", "8"], "silent": True}}},
    )
    decision = ExposurePolicy(settings).decide(42, "rng.awesome", 9)

    assert not decision.channel_allowed
    assert decision.silent_deny
    assert decision.blocked_text() is None
    assert ExposurePolicy(settings).decide(42, "rng.awesome", 7).channel_allowed


def test_deny_list_and_notify_text():
    settings = load_exposure_settings(
        "q",
        overrides={},
        channel_policies={"42": {"rng.roll": {"deny": [5], "notify": "Not here."}}},
    )
    policy = ExposurePolicy(settings)

    assert policy.mode_for(42, "rng.roll") is ExposureMode.QUESTION
    assert policy.decide(42, "rng.roll", 5).blocked_text() == "Not here."
    assert policy.decide(42, "rng.roll", 6).channel_allowed


@pytest.mark.parametrize(
    "kwargs",
    [
        {"default": "loud"},
        {"overrides": {"abc": {"rng.roll": "bang"}}},
        {"overrides": {"42": {"rng.roll": "sometimes"}}},
        {"channel_policies": {"42": {"rng.roll": {"allow": "123"}}}},
        {"channel_policies": {"42": {"rng.roll": {"colour": "red"}}}},
    ],
)
def test_invalid_tables_are_rejected(kwargs):
    with pytest.raises(ExposureConfigError):
        load_exposure_settings(**kwargs)
