"""
PAR status hysteresis.

Why this module exists:
- upstream(CORE)의 current status는 rule 변경 후 늦게 갱신되거나 틀린 값이 남는다.
  보고서에는 수량과 rule 기준으로 다시 계산한 status를 써야 한다.
- 진입(set) 조건과 해제(reset) 조건을 분리한 2-band hysteresis로
  수량이 rule 근처에서 흔들릴 때 status가 깜빡이지 않게 한다.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ParStatus(str, Enum):
    """
    PAR status. value는 CORE tbEnum label과 같다.
    """

    NONE = ""
    ABOVE = "Above PAR"
    AT = "At PAR"
    BELOW = "Below PAR"

    @classmethod
    def from_label(cls, label: str | None) -> "ParStatus | None":
        """
        label을 Enum으로 변환한다. 빈 값은 NONE, 알 수 없는 값은 None.
        """
        normalized = (label or "").strip()
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass(frozen=True)
class ParEvaluation:
    status: ParStatus
    replenishment_qty: int


def compute_replenishment_qty(
    cur_qty: int, rule_qty: int, rule_repl_qty: int, rule_status: ParStatus
) -> int:
    """
    보충 수량을 계산한다. 음수는 수거(pick up), 양수는 투입(drop off).

    - ABOVE: (rule - repl) 까지 수거, 이미 그 이하이면 0
    - BELOW: (rule + repl) 까지 투입, 이미 그 이상이면 0
    - AT: rule 이상이면 (rule + repl) 기준, 미만이면 (rule - repl) 기준
    """
    lower_band = rule_qty - rule_repl_qty
    upper_band = rule_qty + rule_repl_qty

    if rule_status == ParStatus.ABOVE:
        return lower_band - cur_qty if cur_qty > lower_band else 0
    if rule_status == ParStatus.BELOW:
        return upper_band - cur_qty if cur_qty < upper_band else 0
    if rule_status == ParStatus.AT:
        if cur_qty >= rule_qty:
            return upper_band - cur_qty
        return lower_band - cur_qty
    return 0


def _entry_condition_met(
    cur_qty: int, rule_qty: int, rule_status: ParStatus
) -> bool:
    if rule_status == ParStatus.BELOW:
        return cur_qty < rule_qty
    if rule_status == ParStatus.ABOVE:
        return cur_qty > rule_qty
    if rule_status == ParStatus.AT:
        return cur_qty == rule_qty
    return False


def _reset_condition_met(
    cur_qty: int, rule_qty: int, rule_repl_qty: int, rule_status: ParStatus
) -> bool:
    lower_band = rule_qty - rule_repl_qty
    upper_band = rule_qty + rule_repl_qty

    if rule_status == ParStatus.BELOW:
        return cur_qty >= upper_band
    if rule_status == ParStatus.ABOVE:
        return cur_qty <= lower_band
    if rule_status == ParStatus.AT:
        # 양쪽 경계 어느 쪽을 넘어도 해제한다.
        return cur_qty <= lower_band or cur_qty >= upper_band
    return True


def resolve_current_status(
    cur_qty: int,
    rule_qty: int,
    rule_repl_qty: int,
    rule_status: ParStatus,
    reported_status: str | None,
) -> ParStatus:
    """
    보고된 current status를 기준으로 set/reset을 판단한다.

    Rules:
    - reported가 비었거나 rule status와 다르면 set 판단(진입 조건)
    - reported == rule status이면 reset 판단(해제 조건), 아니면 유지
    """
    if rule_status == ParStatus.NONE:
        return ParStatus.NONE

    reported = (reported_status or "").strip()
    if not reported or reported != rule_status.value:
        if _entry_condition_met(cur_qty, rule_qty, rule_status):
            return rule_status
        return ParStatus.NONE

    if _reset_condition_met(cur_qty, rule_qty, rule_repl_qty, rule_status):
        return ParStatus.NONE
    return rule_status


def evaluate_par_status(
    *,
    cur_qty: int,
    rule_qty: int,
    rule_repl_qty: int,
    rule_status_label: str | None,
    reported_status: str | None,
) -> ParEvaluation:
    """
    PAR 1행에 대한 (status, 보충 수량)을 계산한다.

    Called from:
    - workers.par_report.ParReportJob.map_columns

    알 수 없는 rule status label은 (NONE, 0)으로 처리한다.
    """
    rule_status = ParStatus.from_label(rule_status_label)
    if rule_status is None or rule_status == ParStatus.NONE:
        return ParEvaluation(status=ParStatus.NONE, replenishment_qty=0)

    return ParEvaluation(
        status=resolve_current_status(
            cur_qty, rule_qty, rule_repl_qty, rule_status, reported_status
        ),
        replenishment_qty=compute_replenishment_qty(
            cur_qty, rule_qty, rule_repl_qty, rule_status
        ),
    )
