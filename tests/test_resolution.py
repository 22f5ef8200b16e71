import math

import pytest

from procfarm.runtime import resolution
from procfarm.world.jobs import Job
from procfarm.world.processors import DaemonPenalty, Processor
from procfarm.world.tunables import Tunables


def _proc(**overrides) -> Processor:
    params = dict(instance_id="cpu-01", model="Model F12-Scalar", heat_output_base=0.0)
    params.update(overrides)
    return Processor(**params)


def _job(**overrides) -> Job:
    params = dict(
        job_id="job-1",
        name="General Task #1",
        tags=frozenset({"GENERAL"}),
        base_time=100.0,
        base_reward=100.0,
        quality_target=70,
        data_units=20,
    )
    params.update(overrides)
    return Job(**params)


def test_completion_time_divides_by_speed() -> None:
    proc = _proc(speed=1.25)
    assert resolution.completion_time(_job(), proc) == pytest.approx(80.0)


def test_completion_time_with_daemon_penalty() -> None:
    proc = _proc(speed=1.25)
    assert resolution.completion_time(_job(), proc, DaemonPenalty()) == pytest.approx(88.0)


def test_completion_time_floors_speed() -> None:
    proc = _proc(speed=0.0)
    assert resolution.completion_time(_job(base_time=10.0), proc) == pytest.approx(100.0)


def test_cooling_level_two_cuts_heat_by_45_percent() -> None:
    job = _job()
    hot = _proc(heat_output_base=2.0)
    cooled = _proc(heat_output_base=2.0, cooling_level=2)

    base_heat = resolution.effective_heat(hot, job)
    assert base_heat == pytest.approx(2.0)
    assert resolution.effective_heat(cooled, job) == pytest.approx(base_heat * 0.55)


def test_cooling_mitigation_extends_past_table() -> None:
    assert resolution.cooling_mitigation(0) == 0.0
    assert resolution.cooling_mitigation(3) == pytest.approx(0.60)
    assert resolution.cooling_mitigation(5) == pytest.approx(0.70)
    assert resolution.cooling_mitigation(50) == pytest.approx(0.95)


def test_thermal_paste_adds_a_cooling_level() -> None:
    proc = _proc(heat_output_base=2.0, cooling_level=1)
    job = _job()
    assert resolution.effective_heat(proc, job, bonus_levels=1) == pytest.approx(2.0 * 0.55)


def test_cooling_deficit_adds_heat_and_costs_reliability() -> None:
    proc = _proc(requires_cooling_min=2, cooling_level=1, cooling_cap=3)
    job = _job()
    assert resolution.effective_heat(proc, job) == pytest.approx(0.8)
    assert resolution.reliability_tick(proc, job, heat=0.0) == pytest.approx(0.995 + 0.01 - 0.15)


def test_reliability_example_is_base_when_nothing_applies() -> None:
    proc = _proc()
    assert resolution.reliability_tick(proc, _job()) == pytest.approx(0.995)


def test_reliability_clamped_under_extreme_inputs() -> None:
    proc = _proc(fragility=10.0)
    assert resolution.reliability_tick(proc, _job(), heat=math.inf) == 0.0

    sturdy = _proc(reliability_base=5.0)
    assert resolution.reliability_tick(sturdy, _job()) == 1.0

    zeroed = Tunables(k_heat=0.0)
    assert resolution.reliability_tick(_proc(), _job(), zeroed, heat=math.inf) == pytest.approx(0.995)


def test_hazard_lowers_reliability_and_hardening_recovers_it() -> None:
    job = _job(tags=frozenset({"RADIATION"}))
    bare = resolution.reliability_tick(_proc(instruction_set=frozenset({"RADIATION"})), job)
    hardened = resolution.reliability_tick(
        _proc(instruction_set=frozenset({"RADIATION"}), hardening_level=2), job
    )
    assert bare == pytest.approx(0.995 - 0.02)
    assert hardened == pytest.approx(bare + 0.02 * 0.4)


def test_unlisted_tags_carry_no_hazard() -> None:
    assert resolution.tag_hazard({"GENERAL", "MYSTERY"}) == 0.0


def test_bonus_curves_non_decreasing() -> None:
    cooling = [resolution.cooling_bonus(level) for level in range(8)]
    hardening = [resolution.hardening_bonus(level, {"ANGEL", "SIMD"}) for level in range(8)]
    assert cooling == sorted(cooling)
    assert hardening == sorted(hardening)


def test_payout_bounds_and_monotonic() -> None:
    job = _job(base_reward=250.0)
    payouts = [resolution.payout(job, q) for q in range(0, 101)]
    assert all(0.7 * 250.0 - 1e-9 <= value <= 1.2 * 250.0 + 1e-9 for value in payouts)
    assert payouts == sorted(payouts)
    assert payouts[0] == pytest.approx(175.0)
    assert payouts[-1] == pytest.approx(300.0)


def test_reward_multiplier_midpoint() -> None:
    assert resolution.reward_multiplier(50) == pytest.approx(0.95)
    assert resolution.reward_multiplier(-20) == pytest.approx(0.7)
    assert resolution.reward_multiplier(140) == pytest.approx(1.2)


def test_quality_noise_range() -> None:
    assert resolution.quality_noise(0.0) == -4
    assert resolution.quality_noise(0.5) == 0
    assert resolution.quality_noise(0.9999) == 4
    assert resolution.quality_noise(0.3, Tunables(quality_noise=0)) == 0


def test_quality_applies_bias_penalty_and_clamp() -> None:
    job = _job(quality_target=70)
    assert resolution.quality(job, _proc(quality_bias=3), noise=2) == 75
    assert resolution.quality(job, _proc(), penalty=DaemonPenalty()) == 65
    assert resolution.quality(job, _proc(), overheat_penalty=3) == 67
    assert resolution.quality(_job(quality_target=98), _proc(quality_bias=10)) == 100
    assert resolution.quality(_job(quality_target=2), _proc(quality_bias=-10)) == 0


def test_effective_power_uses_tag_modifiers() -> None:
    proc = _proc(power_draw_base=4.0, power_draw_mod={"SIMD": 0.5}, instruction_set=frozenset({"SIMD"}))
    assert resolution.effective_power(proc, _job(tags=frozenset({"SIMD"}))) == pytest.approx(6.0)
    assert resolution.effective_power(proc, _job()) == pytest.approx(4.0)


def test_wear_delta_zero_for_immortal_units() -> None:
    assert resolution.wear_delta(_proc(), heat=5.0, tags={"ANGEL"}, dt=1.0) == 0.0


def test_wear_delta_combines_base_heat_and_hazard() -> None:
    proc = _proc(finite_lifespan=True, mttf_ticks=1000.0)
    delta = resolution.wear_delta(proc, heat=2.0, tags={"RADIATION"}, dt=2.0)
    assert delta == pytest.approx((0.001 + 0.0005 * 2.0 + 0.001) * 2.0)


def test_evaluate_bundles_readouts() -> None:
    proc = _proc(heat_output_base=2.0)
    evaluation = resolution.evaluate(proc, _job())
    assert evaluation.heat == pytest.approx(2.0)
    assert evaluation.overheating is True
    assert evaluation.effective_cooling == 0
    assert evaluation.power == pytest.approx(4.2)
