from procfarm.events import (
    Burnout,
    EventBus,
    EventBusConfig,
    EventKind,
    JobCompleted,
    JobPosted,
    ensure_event_bus,
)


def _completed(tick: int, job_id: str = "job-1") -> JobCompleted:
    return JobCompleted(tick=tick, job_id=job_id, proc_id="cpu-01", payout=90.0, data_units=10, quality=60)


def test_publish_assigns_increasing_sequence() -> None:
    bus = EventBus()
    first = bus.publish(JobPosted(tick=1, job_id="job-1", tags=("GENERAL",)))
    second = bus.publish(_completed(2))

    assert (first.seq, second.seq) == (0, 1)
    assert second.kind == EventKind.JOB_COMPLETED
    assert second.tick == 2
    assert bus.latest_seq() == 1


def test_drain_delivers_once_and_filters_by_kind() -> None:
    bus = EventBus()
    everything = []
    burnouts = []
    bus.subscribe(lambda env: everything.append(env.seq))
    bus.subscribe(lambda env: burnouts.append(env.event.proc_id), kinds={EventKind.BURNOUT})

    bus.publish(_completed(1))
    bus.publish(Burnout(tick=1, proc_id="cpu-02", job_id="job-2"))
    delivered = bus.drain()

    assert [env.seq for env in delivered] == [0, 1]
    assert everything == [0, 1]
    assert burnouts == ["cpu-02"]
    assert bus.drain() == []


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen = []
    sub_id = bus.subscribe(lambda env: seen.append(env.seq))
    bus.unsubscribe(sub_id)

    bus.publish(_completed(1))
    bus.drain()

    assert seen == []


def test_ring_keeps_latest_events() -> None:
    bus = EventBus(EventBusConfig(max_events=3))
    for tick in range(5):
        bus.publish(_completed(tick, job_id=f"job-{tick}"))

    assert [env.seq for env in bus.get_since(0)] == [2, 3, 4]
    assert [env.seq for env in bus.get_since(4)] == [4]


def test_disabled_bus_drops_events() -> None:
    bus = EventBus(EventBusConfig(enabled=False))
    assert bus.publish(_completed(1)) is None
    assert bus.latest_seq() == -1


def test_ensure_event_bus_is_idempotent() -> None:
    class Dummy:
        pass

    world = Dummy()
    bus = ensure_event_bus(world)
    assert ensure_event_bus(world) is bus
    assert isinstance(world.event_bus_cfg, EventBusConfig)
