import pytest

from procfarm.errors import ReplacementError
from procfarm.world.processors import DaemonMode, ProcessorRoster, ProcessorStatus
from procfarm.world.templates import (
    FacilityTemplate,
    ProcessorModel,
    instantiate,
    replace_model,
    replace_unit,
    replaceable_units,
    replacement_cost,
    starter_model,
)


def test_instantiate_copies_model_and_template() -> None:
    model = ProcessorModel(
        name="Model V8-Vector",
        speed=1.4,
        instruction_set=frozenset({"GENERAL", "SIMD"}),
        power_draw_mod={"SIMD": 0.3},
        requires_cooling_min=1,
    )
    template = FacilityTemplate(daemon_mode=DaemonMode.AUTO, daemon_priority=2, daemon_unlocked=True)

    proc = instantiate(model, "cpu-04", template)

    assert proc.instance_id == "cpu-04"
    assert proc.model == "Model V8-Vector"
    assert proc.speed == 1.4
    assert proc.supports(frozenset({"SIMD"}))
    assert proc.requires_cooling_min == 1
    assert (proc.daemon_mode, proc.daemon_priority, proc.daemon_unlocked) == (DaemonMode.AUTO, 2, True)
    assert proc.status is ProcessorStatus.IDLE
    proc.power_draw_mod["SIMD"] = 9.0
    assert model.power_draw_mod["SIMD"] == 0.3


def test_template_changes_do_not_touch_existing_units() -> None:
    template = FacilityTemplate(daemon_priority=1)
    proc = instantiate(starter_model(), "cpu-01", template)
    proc.daemon_affinity["GENERAL"] = 2.0

    assert template.daemon_affinity == {}


def test_replacement_cost_is_discounted_purchase() -> None:
    assert replacement_cost(starter_model()) == 63
    assert replacement_cost(ProcessorModel(name="Cheap", purchase_cost=1, replace_cost_ratio=0.1)) == 1


def _burnt_roster() -> ProcessorRoster:
    roster = ProcessorRoster()
    proc = roster.add(
        instantiate(starter_model(), "cpu-01", FacilityTemplate(daemon_mode=DaemonMode.ASSIST, daemon_unlocked=True))
    )
    proc.cooling_level = 3
    proc.hardening_level = 1
    proc.instruction_set = proc.instruction_set | {"SIMD"}
    proc.status = ProcessorStatus.BURNT_OUT
    return roster


def test_replace_unit_resets_upgrades_by_default() -> None:
    roster = _burnt_roster()

    fresh = replace_unit(roster, "cpu-01", starter_model(), new_id="cpu-02", keep_upgrades=False)

    assert roster.ids() == ["cpu-02"]
    assert (fresh.cooling_level, fresh.hardening_level) == (0, 0)
    assert fresh.daemon_mode is DaemonMode.ASSIST
    assert fresh.daemon_unlocked is True
    assert fresh.supports("SIMD")


def test_replace_unit_can_keep_upgrades() -> None:
    roster = _burnt_roster()
    small = ProcessorModel(name="Model F12-Scalar", cooling_cap=2)

    fresh = replace_unit(roster, "cpu-01", small, new_id="cpu-02", keep_upgrades=True)

    assert (fresh.cooling_level, fresh.hardening_level) == (2, 1)


def test_replace_unit_accepts_retired_units() -> None:
    roster = ProcessorRoster()
    roster.add(instantiate(starter_model(), "cpu-01")).status = ProcessorStatus.DESTROYED
    roster.retire("cpu-01")

    fresh = replace_unit(roster, "cpu-01", starter_model(), new_id="cpu-02", keep_upgrades=False)

    assert roster.retired == {}
    assert fresh.instance_id in roster


def test_replace_unit_rejections() -> None:
    roster = _burnt_roster()
    roster.add(instantiate(starter_model(), "cpu-05"))

    with pytest.raises(ReplacementError):
        replace_unit(roster, "cpu-09", starter_model(), new_id="cpu-10", keep_upgrades=False)
    with pytest.raises(ReplacementError):
        replace_unit(roster, "cpu-05", starter_model(), new_id="cpu-10", keep_upgrades=False)
    with pytest.raises(ReplacementError):
        replace_unit(roster, "cpu-01", ProcessorModel(name="Other"), new_id="cpu-10", keep_upgrades=False)
    assert roster.ids() == ["cpu-01", "cpu-05"]


def test_replace_model_covers_active_and_retired_units_of_one_model() -> None:
    other = ProcessorModel(name="Model V8-Vector")
    roster = ProcessorRoster()
    roster.add(instantiate(starter_model(), "cpu-10")).status = ProcessorStatus.BURNT_OUT
    roster.add(instantiate(starter_model(), "cpu-09")).status = ProcessorStatus.DESTROYED
    roster.retire("cpu-09")
    roster.add(instantiate(starter_model(), "cpu-11"))
    roster.add(instantiate(other, "cpu-12")).status = ProcessorStatus.BURNT_OUT

    assert replaceable_units(roster, starter_model().name) == ["cpu-09", "cpu-10"]

    fresh = replace_model(roster, starter_model(), keep_upgrades=False, new_ids=["cpu-13", "cpu-14"])

    assert [proc.instance_id for proc in fresh] == ["cpu-13", "cpu-14"]
    assert roster.ids() == ["cpu-11", "cpu-12", "cpu-13", "cpu-14"]
    assert roster.retired == {}
    assert roster.require("cpu-12").status is ProcessorStatus.BURNT_OUT


def test_replace_model_rejects_when_nothing_failed() -> None:
    roster = ProcessorRoster()
    roster.add(instantiate(starter_model(), "cpu-01"))

    with pytest.raises(ReplacementError):
        replace_model(roster, starter_model(), keep_upgrades=False, new_ids=["cpu-02"])
    assert roster.ids() == ["cpu-01"]
