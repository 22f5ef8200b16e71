import pytest

from procfarm.errors import (
    AutomationLockedError,
    FirmwareInstalledError,
    IncompatibleInstructionError,
    ProcessorBusyError,
    ProcessorInoperativeError,
    RosterInvariantError,
    UnknownProcessorError,
    UpgradeCapError,
)
from procfarm.world.jobs import Job
from procfarm.world.processors import (
    DaemonMode,
    DaemonPenalty,
    JobWork,
    Processor,
    ProcessorRoster,
    ProcessorStatus,
    cycle_daemon_mode,
    ensure_roster,
    install_daemon_firmware,
    toggle_honor_cooling,
    upgrade_cooling,
    upgrade_hardening,
)


def _proc(proc_id: str = "cpu-01", **overrides) -> Processor:
    params = dict(instance_id=proc_id, model="Model F12-Scalar")
    params.update(overrides)
    return Processor(**params)


def _job(job_id: str = "job-1", tags=("GENERAL",)) -> Job:
    return Job(
        job_id=job_id,
        name="Task",
        tags=frozenset(tags),
        base_time=10.0,
        base_reward=50.0,
        quality_target=60,
        data_units=5,
    )


def test_upgrades_stop_at_cap() -> None:
    proc = _proc(cooling_cap=2, hardening_cap=1)
    assert upgrade_cooling(proc) == 1
    assert upgrade_cooling(proc) == 2
    with pytest.raises(UpgradeCapError) as excinfo:
        upgrade_cooling(proc)
    assert excinfo.value.cap == 2
    assert proc.cooling_level == 2

    assert upgrade_hardening(proc) == 1
    with pytest.raises(UpgradeCapError):
        upgrade_hardening(proc)


def test_levels_above_cap_rejected_at_creation() -> None:
    with pytest.raises(UpgradeCapError):
        _proc(cooling_level=4, cooling_cap=3)


def test_daemon_mode_cycles_when_unlocked() -> None:
    locked = _proc()
    with pytest.raises(AutomationLockedError):
        cycle_daemon_mode(locked)

    proc = _proc(daemon_unlocked=True)
    assert [cycle_daemon_mode(proc) for _ in range(3)] == [DaemonMode.ASSIST, DaemonMode.AUTO, DaemonMode.OFF]

    proc.status = ProcessorStatus.BURNT_OUT
    with pytest.raises(ProcessorInoperativeError):
        cycle_daemon_mode(proc)


def test_toggle_honor_cooling() -> None:
    proc = _proc()
    assert toggle_honor_cooling(proc) is False
    assert toggle_honor_cooling(proc) is True


def test_check_assignable_reports_first_violation() -> None:
    dead = _proc(status=ProcessorStatus.DESTROYED)
    with pytest.raises(ProcessorInoperativeError):
        dead.check_assignable(_job(tags=("SIMD",)))

    busy = _proc()
    busy.bind(_job("job-1"), tick=0)
    with pytest.raises(ProcessorBusyError):
        busy.check_assignable(_job("job-2", tags=("SIMD",)))

    with pytest.raises(IncompatibleInstructionError) as excinfo:
        _proc().check_assignable(_job(tags=("GENERAL", "SIMD", "ANGEL")))
    assert excinfo.value.missing == ("ANGEL", "SIMD")


def test_bind_and_detach() -> None:
    proc = _proc()
    work = proc.bind(_job(), tick=3)

    assert isinstance(work, JobWork)
    assert proc.is_running
    assert proc.job.job_id == "job-1"

    job = proc.detach(ProcessorStatus.IDLE)
    assert job.job_id == "job-1"
    assert proc.work is None
    assert proc.is_idle


def test_roster_iterates_in_id_order() -> None:
    roster = ProcessorRoster()
    for proc_id in ("cpu-10", "cpu-02", "cpu-07"):
        roster.add(_proc(proc_id))

    assert [proc.instance_id for proc in roster] == ["cpu-02", "cpu-07", "cpu-10"]
    assert roster.ids() == ["cpu-02", "cpu-07", "cpu-10"]
    with pytest.raises(ValueError):
        roster.add(_proc("cpu-02"))
    with pytest.raises(UnknownProcessorError):
        roster.require("cpu-99")


def test_retire_only_destroyed_units() -> None:
    roster = ProcessorRoster()
    roster.add(_proc("cpu-01", status=ProcessorStatus.BURNT_OUT))
    roster.add(_proc("cpu-02", status=ProcessorStatus.DESTROYED))

    with pytest.raises(ProcessorInoperativeError):
        roster.retire("cpu-01")
    roster.retire("cpu-02")

    assert roster.ids() == ["cpu-01"]
    assert "cpu-02" in roster.retired
    with pytest.raises(ValueError):
        roster.add(_proc("cpu-02"))


def test_supported_tags_ignore_broken_units() -> None:
    roster = ProcessorRoster()
    roster.add(_proc("cpu-01"))
    roster.add(_proc("cpu-02", instruction_set=frozenset({"GENERAL", "SIMD"}), status=ProcessorStatus.BURNT_OUT))

    assert roster.supported_tags() == frozenset({"GENERAL"})
    assert roster.unlock_instruction_tag("SIMD") == 1
    assert roster.supported_tags() == frozenset({"GENERAL", "SIMD"})


def test_invariants_catch_double_assignment() -> None:
    roster = ProcessorRoster()
    first = roster.add(_proc("cpu-01"))
    second = roster.add(_proc("cpu-02"))
    job = _job()
    first.bind(job, tick=0)
    roster.check_invariants()

    second.work = JobWork(job=job, started_tick=0)
    second.status = ProcessorStatus.RUNNING
    with pytest.raises(RosterInvariantError):
        roster.check_invariants()


def test_invariants_catch_destroyed_unit_holding_work() -> None:
    roster = ProcessorRoster()
    proc = roster.add(_proc())
    proc.bind(_job(), tick=0)
    proc.status = ProcessorStatus.DESTROYED

    with pytest.raises(RosterInvariantError):
        roster.check_invariants()


def test_signature_tracks_state() -> None:
    roster = ProcessorRoster()
    proc = roster.add(_proc())
    before = roster.signature()
    upgrade_cooling(proc)
    assert roster.signature() != before


def test_ensure_roster_attaches_empty_roster() -> None:
    class Dummy:
        pass

    world = Dummy()
    roster = ensure_roster(world)
    assert len(roster) == 0
    assert ensure_roster(world) is roster


def test_daemon_firmware_installs_once_and_eases_penalty() -> None:
    proc = _proc()

    penalty = install_daemon_firmware(proc)

    assert proc.daemon_unlocked
    assert penalty == DaemonPenalty(quality=-3, time_multiplier=pytest.approx(1.08))
    assert cycle_daemon_mode(proc) is DaemonMode.ASSIST
    with pytest.raises(FirmwareInstalledError):
        install_daemon_firmware(proc)


def test_daemon_firmware_penalty_floors() -> None:
    proc = _proc(daemon_penalty=DaemonPenalty(quality=-1, time_multiplier=1.03))

    assert install_daemon_firmware(proc) == DaemonPenalty(quality=-1, time_multiplier=1.02)


def test_ids_sort_numerically_past_two_digits() -> None:
    roster = ProcessorRoster()
    for proc_id in ("cpu-100", "cpu-99", "cpu-09"):
        roster.add(_proc(proc_id))

    assert roster.ids() == ["cpu-09", "cpu-99", "cpu-100"]
    assert [proc.instance_id for proc in roster] == roster.ids()
