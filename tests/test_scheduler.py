import pytest

from procfarm.simulation.scheduler import Phase, SimulationClock, SimulationScheduler


def test_handlers_run_in_phase_order_and_see_new_tick() -> None:
    scheduler = SimulationScheduler()
    calls = []
    scheduler.register_handler(Phase.REPORT, lambda clock: calls.append(("report", clock.current_tick)))
    scheduler.register_handler(Phase.SPAWN, lambda clock: calls.append(("spawn", clock.current_tick)))
    scheduler.register_handler(Phase.ECONOMY, lambda clock: calls.append(("economy", clock.current_tick)))

    metrics = scheduler.run_tick()

    assert calls == [("spawn", 1), ("economy", 1), ("report", 1)]
    assert metrics.tick == 1
    assert [phase.phase for phase in metrics.phases] == list(Phase.ordered())
    assert scheduler.last_tick_metrics() is metrics


def test_same_phase_handlers_keep_registration_order() -> None:
    scheduler = SimulationScheduler()
    calls = []
    scheduler.register_handler(Phase.RELIABILITY, lambda clock: calls.append("a"), name="a")
    scheduler.register_handler(Phase.RELIABILITY, lambda clock: calls.append("b"), name="b")

    metrics = scheduler.run_tick()

    assert calls == ["a", "b"]
    names = [handler.name for handler in metrics.phases[1].handlers]
    assert names == ["a", "b"]
    assert metrics.phases[1].duration_ms >= 0.0


def test_cadence_skips_off_ticks() -> None:
    scheduler = SimulationScheduler()
    ticks = []
    scheduler.register_handler(Phase.ECONOMY, lambda clock: ticks.append(clock.current_tick), cadence=3)

    scheduler.run(7)

    assert ticks == [3, 6]


def test_invalid_arguments_rejected() -> None:
    scheduler = SimulationScheduler()
    with pytest.raises(ValueError):
        scheduler.register_handler(Phase.SPAWN, lambda clock: None, cadence=0)
    with pytest.raises(ValueError):
        scheduler.run_tick(0)
    with pytest.raises(ValueError):
        scheduler.run(-1)


def test_clock_days() -> None:
    clock = SimulationClock(ticks_per_day=180)
    clock.advance(179)
    assert clock.current_day == 0
    assert clock.ticks_until_day_boundary() == 1

    clock.advance(2)
    assert clock.current_day == 1
    assert clock.last_dt == 2

    copy = clock.copy()
    copy.advance(10)
    assert clock.current_tick == 181
