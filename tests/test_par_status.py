import pytest

from utils.par_status import (
    ParStatus,
    compute_replenishment_qty,
    evaluate_par_status,
    resolve_current_status,
)


def test_below_rule_sets_status_when_quantity_drops_under_rule():
    evaluation = evaluate_par_status(
        cur_qty=9,
        rule_qty=10,
        rule_repl_qty=2,
        rule_status_label="Below PAR",
        reported_status="",
    )
    assert evaluation.status == ParStatus.BELOW
    assert evaluation.replenishment_qty == 3


def test_below_rule_resets_only_at_upper_band():
    evaluation = evaluate_par_status(
        cur_qty=12,
        rule_qty=10,
        rule_repl_qty=2,
        rule_status_label="Below PAR",
        reported_status="Below PAR",
    )
    assert evaluation.status == ParStatus.NONE
    assert evaluation.replenishment_qty == 0


def test_below_rule_stays_set_inside_hysteresis_band():
    status = resolve_current_status(11, 10, 2, ParStatus.BELOW, "Below PAR")
    assert status == ParStatus.BELOW


def test_below_rule_does_not_set_when_quantity_equals_rule():
    status = resolve_current_status(10, 10, 2, ParStatus.BELOW, "")
    assert status == ParStatus.NONE


def test_above_rule_set_and_reset_bands():
    assert resolve_current_status(11, 10, 2, ParStatus.ABOVE, "") == ParStatus.ABOVE
    assert resolve_current_status(10, 10, 2, ParStatus.ABOVE, "") == ParStatus.NONE
    assert (
        resolve_current_status(9, 10, 2, ParStatus.ABOVE, "Above PAR")
        == ParStatus.ABOVE
    )
    assert (
        resolve_current_status(8, 10, 2, ParStatus.ABOVE, "Above PAR")
        == ParStatus.NONE
    )


def test_at_rule_resets_on_either_boundary():
    assert resolve_current_status(10, 10, 2, ParStatus.AT, "") == ParStatus.AT
    assert resolve_current_status(11, 10, 2, ParStatus.AT, "At PAR") == ParStatus.AT
    assert resolve_current_status(8, 10, 2, ParStatus.AT, "At PAR") == ParStatus.NONE
    assert resolve_current_status(12, 10, 2, ParStatus.AT, "At PAR") == ParStatus.NONE


def test_stale_reported_status_is_reevaluated_with_entry_condition():
    # rule was reconfigured from Above to Below; CORE still reports Above.
    status = resolve_current_status(11, 10, 2, ParStatus.BELOW, "Above PAR")
    assert status == ParStatus.NONE
    status = resolve_current_status(7, 10, 2, ParStatus.BELOW, "Above PAR")
    assert status == ParStatus.BELOW


@pytest.mark.parametrize(
    ("cur_qty", "rule_status", "expected"),
    [
        (15, ParStatus.ABOVE, -7),
        (8, ParStatus.ABOVE, 0),
        (5, ParStatus.BELOW, 7),
        (12, ParStatus.BELOW, 0),
        (10, ParStatus.AT, 2),
        (9, ParStatus.AT, -1),
        (3, ParStatus.NONE, 0),
    ],
)
def test_compute_replenishment_qty(cur_qty, rule_status, expected):
    assert compute_replenishment_qty(cur_qty, 10, 2, rule_status) == expected


def test_unknown_or_blank_rule_status_yields_no_status():
    for label in ("", None, "Sideways PAR"):
        evaluation = evaluate_par_status(
            cur_qty=3,
            rule_qty=10,
            rule_repl_qty=2,
            rule_status_label=label,
            reported_status="Below PAR",
        )
        assert evaluation.status == ParStatus.NONE
        assert evaluation.replenishment_qty == 0


def test_from_label_trims_and_rejects_unknown():
    assert ParStatus.from_label(" At PAR ") == ParStatus.AT
    assert ParStatus.from_label(None) == ParStatus.NONE
    assert ParStatus.from_label("at par") is None
